"""
pytest configuration and fixtures.
"""

import socket
from typing import Callable, Dict, Generator, List, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tinyserve import HttpServer, ServerConfig
from tinyserve.http import IncomingRequest, ServerResponse


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /ilia?debug=1 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b"name=zd"
    return (
        b"POST /ilia HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        b"Content-Length: %d\r\n" % len(body) +
        b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def sent() -> List[bytes]:
    """Bytes handed to the send callable of responses built by make_response."""
    return []


@pytest.fixture
def make_response(sent: List[bytes]) -> Callable[..., ServerResponse]:
    """Factory for responses that record what they send."""
    def factory(keep_alive: bool = False) -> ServerResponse:
        def send(data: bytes) -> bool:
            sent.append(data)
            return True
        return ServerResponse(send, keep_alive=keep_alive)
    return factory


def make_request(method: str, url: str, **headers: str) -> IncomingRequest:
    """Helper to create a request for testing."""
    return IncomingRequest(
        method=method,
        url=url,
        headers={k.lower().replace("_", "-"): v for k, v in headers.items()},
    )


@pytest.fixture
def fresh_singleton() -> Generator[None, None, None]:
    """Forget the process-wide server before and after the test."""
    HttpServer._instance = None
    yield
    HttpServer._instance = None


@pytest.fixture
def server(config: ServerConfig) -> Generator[HttpServer, None, None]:
    """An HttpServer that is closed after the test."""
    app = HttpServer(config)
    yield app
    app.close()


# =============================================================================
# RAW SOCKET CLIENT
# =============================================================================

def send_raw(address: Tuple[str, int], data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes and read until the server closes the connection."""
    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def split_response(raw: bytes) -> Tuple[int, Dict[str, str], bytes]:
    """Split a raw response into (status, lower-cased headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


def get(address: Tuple[str, int], url: str, method: str = "GET") -> bytes:
    """One request on its own connection."""
    return send_raw(
        address,
        f"{method} {url} HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n".encode(),
    )
