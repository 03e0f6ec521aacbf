"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Logs one line per request to the ``tinyserve.access`` logger.

Register it first so it sees every request, including those a later
middleware halts:

    server.use(LoggingMiddleware())     # outermost
    server.use(RequireToken())

Since the chain runs synchronously, everything downstream (other
middleware, the route handler or the default responder) has finished by
the time ``next()`` returns, so the final status is known.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import Middleware, Next
from ..http.request import IncomingRequest
from ..http.response import ServerResponse


logger = logging.getLogger("tinyserve.access")


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    method: str
    url: str
    client_ip: str
    status_code: Optional[int]
    bytes_sent: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        # Apache-style; "-" stands in for a response nobody finalized.
        status = self.status_code if self.status_code is not None else "-"
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.url}" {status} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Args:
        log_format: "text" (Apache-like line) or "json".
        include_request_id: Set an X-Request-ID header before the rest of
                            the chain runs.
        log_level: Level access lines are logged at.
        skip_paths: URLs that are not logged.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {log_format!r}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: IncomingRequest, response: ServerResponse, next: Next) -> None:
        request_id = str(uuid.uuid4())[:8]
        if self.include_request_id and not response.finished:
            response.set_header("X-Request-ID", request_id)

        start_time = time.time()
        try:
            next()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        if request.url in self.skip_paths or request.path in self.skip_paths:
            return

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            url=request.url,
            client_ip=request.client_address[0],
            status_code=response.status_code if response.finished else None,
            bytes_sent=response.bytes_sent,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
