"""
=============================================================================
INCOMING REQUEST & PARSER
=============================================================================

Turns the raw bytes the listener read off a socket into an
``IncomingRequest``. The dispatch pipeline never builds requests itself;
it only reads ``method`` and ``url`` from whatever the listener hands it.

=============================================================================
URL VS PATH
=============================================================================

Route matching is an exact comparison against the request-target as it
arrived on the wire, query string included:

    GET /ilia?debug=1 HTTP/1.1
        ─────────────
              │
              ├── url   = "/ilia?debug=1"   ← routing + default responder
              ├── path  = "/ilia"           ← decoded, for handlers
              └── query = "debug=1"

So a route registered as "/ilia" does not match "/ilia?debug=1".

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when the request bytes are not a valid HTTP/1.x request.

    Carries the status code the listener should answer with:

        400 Bad Request                - malformed syntax
        413 Payload Too Large          - exceeds max_request_size
        505 HTTP Version Not Supported - anything but HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class IncomingRequest:
    """
    A parsed HTTP request as seen by middleware and handlers.

    Attributes:
        method:         Upper-case method token ("GET", "PATCH", ...).
        url:            Raw request-target, query string included.
        path:           URL-decoded path component of ``url``.
        query:          Raw query string (no leading "?").
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header names lower-cased, repeated headers joined by ", ".
        body:           Body bytes, exactly Content-Length long.
        client_address: (ip, port) of the peer.
    """

    method: str
    url: str
    path: str = ""
    query: str = ""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    def __post_init__(self):
        if not self.path:
            parts = urlsplit(self.url)
            self.path = unquote(parts.path) or "/"
            self.query = self.query or parts.query

    @property
    def content_length(self) -> int:
        """Content-Length as an int, 0 when missing or garbage."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client expects the connection to stay open.

            HTTP/1.1: keep-alive unless "Connection: close"
            HTTP/1.0: close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses one complete request (as framed by ``Connection.read_request``).

        Raw bytes
            │
            ├── 1. size check                    → 413
            ├── 2. split head / body at CRLFCRLF → 400 if missing
            ├── 3. request line                  → 400 / 505
            ├── 4. header lines                  → 400 on a line without ":"
            └── 5. body by Content-Length        → 400 if truncated

    Any upper-case token is accepted as a method. Deciding which methods
    are served is the dispatcher's job, not the parser's.
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s][^:]*):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> IncomingRequest:
        """
        Parse raw request bytes.

        Args:
            data: One complete request, head and body.
            client_address: Peer (ip, port), recorded on the request.

        Returns:
            The parsed IncomingRequest.

        Raises:
            HTTPParseError: If the bytes are not a valid request.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        head = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = head.split("\r\n")
        method, url, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        content_length = self._content_length(headers)
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return IncomingRequest(
            method=method,
            url=url,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, url, version = match.groups()
        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )
        return method, url, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for line in lines:
            if not line:
                continue
            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line!r}")

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            # Repeated headers fold into one comma-separated value (RFC 7230 3.2.2)
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value
        return headers

    @staticmethod
    def _content_length(headers: Dict[str, str]) -> int:
        raw: Optional[str] = headers.get("content-length")
        if raw is None:
            return 0
        try:
            length = int(raw)
        except ValueError:
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        if length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        return length
