"""
=============================================================================
SERVER RESPONSE
=============================================================================

The writable response object the listener hands to middleware and
handlers together with the request.

=============================================================================
WRITE-ONCE LIFECYCLE
=============================================================================

A response is finalized exactly once. Every write path funnels into
``end()``, which serializes the message and hands the bytes to the
listener's ``send`` callable a single time:

    ┌──────────┐  write_head() / set_header()  ┌──────────┐
    │  OPEN    │ ────────────────────────────► │  OPEN    │
    │          │  write(chunk)                 │          │
    └────┬─────┘                               └────┬─────┘
         │ end(body)                                │
         ▼                                          │
    ┌──────────┐   end() / write() / write_head()   │
    │ FINISHED │ ◄──────────────────────────────────┘
    │          │ ──► ResponseFinishedError
    └──────────┘

=============================================================================
SERIALIZED FORM
=============================================================================

    HTTP/1.1 200 OK\r\n
    Content-Type: text/plain\r\n
    Content-Length: 30\r\n          ← always computed from the body
    Server: tinyserve/1.0\r\n       ← unless the handler set one
    Connection: keep-alive\r\n      ← from the listener's keep-alive decision
    \r\n
    Received GET request for /ilia

No Date header is written: two identical requests get byte-identical
responses.

=============================================================================
"""

from typing import Callable, Dict, List, Optional, Union

from .status_codes import reason_phrase


# Send: the listener-provided write primitive. Returns False if the peer is gone.
Send = Callable[[bytes], bool]


class ResponseFinishedError(RuntimeError):
    """Raised on any write to a response that has already been ended."""


class ServerResponse:
    """
    Response being built for one request.

    Usage:
        def handler(request, response):
            response.write_head(200, {"Content-Type": "text/plain"})
            response.end("zd")
    """

    def __init__(
        self,
        send: Send,
        keep_alive: bool = False,
        server_name: str = "tinyserve/1.0",
        version: str = "HTTP/1.1",
    ):
        """
        Args:
            send: Callable that writes the serialized response to the peer.
            keep_alive: Whether the listener will keep the connection open
                        after this response. Sets the Connection header.
            server_name: Value for the Server header.
            version: HTTP version for the status line.
        """
        self.status_code: int = 200
        self.keep_alive = keep_alive
        self.server_name = server_name
        self.version = version

        self._send = send
        self._headers: Dict[str, str] = {}
        self._chunks: List[bytes] = []
        self._finished = False
        self._bytes_sent = 0

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def finished(self) -> bool:
        """True once ``end()`` has run."""
        return self._finished

    @property
    def headers_sent(self) -> bool:
        # Headers go out together with the body, in end().
        return self._finished

    @property
    def bytes_sent(self) -> int:
        """Size of the serialized message, 0 until finished."""
        return self._bytes_sent

    @property
    def body(self) -> bytes:
        """Body bytes written so far."""
        return b"".join(self._chunks)

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    # =========================================================================
    # HEADERS
    # =========================================================================

    def set_header(self, name: str, value: str) -> "ServerResponse":
        """
        Set a header, replacing any existing header of the same name
        regardless of case.
        """
        self._ensure_open()
        self._drop(name)
        self._headers[name] = str(value)
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for key, value in self._headers.items():
            if key.lower() == lowered:
                return value
        return default

    def remove_header(self, name: str) -> "ServerResponse":
        self._ensure_open()
        self._drop(name)
        return self

    def _drop(self, name: str) -> None:
        lowered = name.lower()
        for key in [k for k in self._headers if k.lower() == lowered]:
            del self._headers[key]

    # =========================================================================
    # WRITING
    # =========================================================================

    def write_head(
        self,
        status: int,
        headers: Optional[Dict[str, str]] = None
    ) -> "ServerResponse":
        """
        Set the status code and merge ``headers`` into the response.

        Raises:
            ResponseFinishedError: If the response was already ended.
        """
        self._ensure_open()
        self.status_code = int(status)
        for name, value in (headers or {}).items():
            self.set_header(name, value)
        return self

    def write(self, chunk: Union[str, bytes]) -> "ServerResponse":
        """Buffer body data. Strings are encoded as UTF-8."""
        self._ensure_open()
        self._chunks.append(_to_bytes(chunk))
        return self

    def end(self, body: Union[str, bytes, None] = None) -> bool:
        """
        Finalize the response and send it.

        Args:
            body: Optional last chunk of body data.

        Returns:
            True if the bytes were handed to the peer, False if the send failed.

        Raises:
            ResponseFinishedError: If the response was already ended.
        """
        self._ensure_open()
        if body is not None:
            self._chunks.append(_to_bytes(body))

        data = self.to_bytes()
        self._finished = True
        self._bytes_sent = len(data)
        return self._send(data)

    def _ensure_open(self) -> None:
        if self._finished:
            raise ResponseFinishedError("Response has already been finalized")

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status_code} {reason_phrase(self.status_code)}"

    def to_bytes(self) -> bytes:
        """
        Serialize the current state. Does not finalize the response.
        """
        body = self.body

        headers = dict(self._headers)
        for key in [k for k in headers if k.lower() == "content-length"]:
            del headers[key]
        headers["Content-Length"] = str(len(body))

        if self.get_header("Server") is None:
            headers["Server"] = self.server_name
        if self.get_header("Connection") is None:
            headers["Connection"] = "keep-alive" if self.keep_alive else "close"

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        lines.append("")

        head = "\r\n".join(lines).encode("iso-8859-1") + b"\r\n"
        return head + body

    def __repr__(self) -> str:
        state = "finished" if self._finished else "open"
        return f"<ServerResponse {self.status_code} {state}>"


def _to_bytes(chunk: Union[str, bytes]) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)
