"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable in one dataclass, validated once at construction.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Code           ServerConfig(port=3000)                          │
    │   2. listen() args  server.listen(3000, "0.0.0.0")  (host / port)    │
    │   3. CLI            python -m tinyserve --port 3000                  │
    │   4. Environment    TINYSERVE_PORT=3000 (CLI entry point only)       │
    │   5. Defaults       the values below                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The server itself never reads the environment; only ``from_env`` does.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    NETWORK     host, port, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_request_size
    WORKERS     min_workers, max_workers
    LOGGING     log_level, log_format
    PIPELINE    strict_middleware_chain
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" for all interfaces."""

    port: int = 8080
    """Port to bind. 0 lets the OS pick a free one (see HttpServer.address)."""

    backlog: int = 128
    """Queued connections before the OS starts refusing."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout for reading a request, seconds."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve more than one request per connection when the client asks."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024
    """Requests larger than this are answered with 413."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: "text" or "json"."""

    server_name: str = "tinyserve/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # PIPELINE
    # ─────────────────────────────────────────────────────────────────────

    strict_middleware_chain: bool = False
    """
    Refuse to dispatch when no middleware is registered
    (EmptyMiddlewareChainError, answered with 500) instead of going
    straight to the final stage.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            TINYSERVE_HOST          bind address (default 127.0.0.1)
            TINYSERVE_PORT          bind port (default 8080)
            TINYSERVE_WORKERS       max worker threads (default 16)
            TINYSERVE_TIMEOUT       socket timeout seconds (default 30)
            TINYSERVE_LOG_LEVEL     logging level (default INFO)
            TINYSERVE_LOG_FORMAT    access log format, text or json (default text)
            TINYSERVE_STRICT_CHAIN  "1"/"true" to refuse empty chains
        """
        max_workers = int(os.getenv("TINYSERVE_WORKERS", "16"))
        return cls(
            host=os.getenv("TINYSERVE_HOST", "127.0.0.1"),
            port=int(os.getenv("TINYSERVE_PORT", "8080")),
            min_workers=min(4, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("TINYSERVE_TIMEOUT", "30")),
            log_level=os.getenv("TINYSERVE_LOG_LEVEL", "INFO"),
            log_format=os.getenv("TINYSERVE_LOG_FORMAT", "text"),
            strict_middleware_chain=(
                os.getenv("TINYSERVE_STRICT_CHAIN", "").strip().lower() in _TRUTHY
            ),
        )

    def validate(self) -> None:
        """
        Fail fast on values the server cannot run with.

        Raises:
            ValueError: On the first invalid field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")
