"""
=============================================================================
TINYSERVE - Minimal Middleware-Based HTTP Server
=============================================================================

A small HTTP/1.1 server on raw sockets: an ordered middleware chain with
explicit ``next()`` continuations, exact-match routes for GET, POST, PUT
and DELETE, and a default responder for everything else.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        REQUEST FLOW                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   socket ─► Listener ─► HttpServer.handle_request                    │
    │                              │                                       │
    │                              ▼                                       │
    │                         Dispatcher                                   │
    │                 mw[0] ─next()─► mw[1] ─next()─► ... ─► FINAL          │
    │                   │               │                      │           │
    │                   └─ no next() ───┴─► halted             ▼           │
    │                                               route handler, or      │
    │                                               200 / 404 / 405 reply  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tinyserve/
    ├── __init__.py          # package exports
    ├── __main__.py          # CLI (python -m tinyserve)
    ├── server.py            # HttpServer, create_app
    ├── dispatcher.py        # middleware chain + final stage
    ├── config.py            # ServerConfig
    ├── core/
    │   ├── listener.py      # listening socket, accept thread
    │   ├── connection.py    # request framing, keep-alive
    │   └── thread_pool.py   # worker threads
    ├── http/
    │   ├── request.py       # IncomingRequest, RequestParser
    │   ├── response.py      # ServerResponse
    │   ├── router.py        # RouteTable
    │   └── status_codes.py  # HTTPStatus
    └── middleware/
        ├── base.py          # Middleware, FunctionMiddleware
        └── logging.py       # LoggingMiddleware

=============================================================================
QUICK START
=============================================================================

    from tinyserve import create_app, LoggingMiddleware

    app = create_app()
    app.use(LoggingMiddleware())

    @app.get("/ilia")
    def ilia(request, response):
        response.write_head(200, {"Content-Type": "text/plain"})
        response.end("zd")

    app.listen(3000, on_ready=lambda: print("Server is listening"))
    app.serve_forever()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import HttpServer, ServerAlreadyCreatedError, create_app
from .dispatcher import (
    Dispatcher,
    DispatchError,
    EmptyMiddlewareChainError,
    MiddlewareChainError,
)
from .http import (
    IncomingRequest,
    ServerResponse,
    ResponseFinishedError,
    RouteTable,
    HTTPStatus,
    HTTPParseError,
)
from .middleware import Middleware, FunctionMiddleware, LoggingMiddleware

__all__ = [
    "__version__",

    # Server
    "HttpServer",
    "ServerAlreadyCreatedError",
    "create_app",
    "ServerConfig",

    # Pipeline
    "Dispatcher",
    "DispatchError",
    "EmptyMiddlewareChainError",
    "MiddlewareChainError",

    # HTTP
    "IncomingRequest",
    "ServerResponse",
    "ResponseFinishedError",
    "RouteTable",
    "HTTPStatus",
    "HTTPParseError",

    # Middleware
    "Middleware",
    "FunctionMiddleware",
    "LoggingMiddleware",
]
