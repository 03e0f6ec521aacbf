"""
=============================================================================
HTTP SERVER
=============================================================================

The application object: owns the route table, the dispatcher and the
listener, and ties them together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          HttpServer                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   app.use(mw) ─────────────► Dispatcher (middleware, in order)       │
    │   app.get("/ilia", h) ─────► RouteTable  (GET, "/ilia") → h          │
    │                                                                      │
    │   app.listen(3000, on_ready=cb)                                      │
    │        └──► Listener(config, app.handle_request).start(cb)           │
    │                                                                      │
    │   per request (worker thread):                                       │
    │        Listener ──► handle_request(req, res) ──► Dispatcher          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ONE SERVER PER PROCESS
=============================================================================

``HttpServer.create()`` (and ``create_app()``) is the process-wide
factory. The first call builds the server; any later call raises
``ServerAlreadyCreatedError`` and leaves the first server untouched:

    app = HttpServer.create()
    HttpServer.create()   # ServerAlreadyCreatedError:
                          #   You can not run 2 servers on the same machine

Constructing ``HttpServer()`` directly is not restricted, which is what
tests and embedding code use.

=============================================================================
"""

import signal
import logging
import threading
from typing import Callable, Optional, Tuple, Union

from .config import ServerConfig
from .core.listener import Listener
from .dispatcher import Dispatcher
from .http.request import IncomingRequest
from .http.response import ServerResponse
from .http.router import RouteTable, Handler
from .middleware.base import Middleware, MiddlewareFunc


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ServerAlreadyCreatedError(RuntimeError):
    """A second server was requested from the process-wide factory."""


class HttpServer:
    """
    Middleware-based HTTP server.

    Usage:
        app = HttpServer.create()
        app.use(LoggingMiddleware())

        @app.get("/ilia")
        def ilia(request, response):
            response.write_head(200, {"Content-Type": "text/plain"})
            response.end("zd")

        app.listen(3000, on_ready=lambda: print("Server is listening"))
        app.serve_forever()
    """

    _instance: Optional["HttpServer"] = None
    _instance_lock = threading.Lock()

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults are used when omitted.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._routes = RouteTable()
        self._dispatcher = Dispatcher(
            self._routes,
            strict_chain=self.config.strict_middleware_chain,
        )
        self._listener: Optional[Listener] = None
        self._original_handlers: dict = {}

    @classmethod
    def create(cls, config: Optional[ServerConfig] = None) -> "HttpServer":
        """
        Create the one server of this process.

        Raises:
            ServerAlreadyCreatedError: If a server was already created.
        """
        with cls._instance_lock:
            if cls._instance is not None:
                raise ServerAlreadyCreatedError("You can not run 2 servers on the same machine")
            cls._instance = cls(config)
            return cls._instance

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def use(self, middleware: Union[Middleware, MiddlewareFunc]) -> "HttpServer":
        """
        Append middleware. Runs in registration order on every request.

        Returns:
            Self for method chaining.
        """
        self._dispatcher.use(middleware)
        return self

    def _register(self, method: str, route: str, handler: Optional[Handler]):
        if handler is None:
            def decorator(func: Handler) -> Handler:
                self._routes.add(method, route, func)
                return func
            return decorator

        self._routes.add(method, route, handler)
        return self

    def get(self, route: str, handler: Optional[Handler] = None):
        """
        Register a GET handler, directly or as a decorator:

            app.get("/ilia", ilia)

            @app.get("/ilia")
            def ilia(request, response): ...
        """
        return self._register("GET", route, handler)

    def post(self, route: str, handler: Optional[Handler] = None):
        """Register a POST handler. See get()."""
        return self._register("POST", route, handler)

    def put(self, route: str, handler: Optional[Handler] = None):
        """Register a PUT handler. See get()."""
        return self._register("PUT", route, handler)

    def delete(self, route: str, handler: Optional[Handler] = None):
        """Register a DELETE handler. See get()."""
        return self._register("DELETE", route, handler)

    def handle_request(self, request: IncomingRequest, response: ServerResponse) -> None:
        """The request callback the listener invokes for every request."""
        self._dispatcher.dispatch(request, response)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def listen(
        self,
        port: int,
        host: str = "127.0.0.1",
        on_ready: Optional[Callable[[], None]] = None,
    ) -> "HttpServer":
        """
        Start accepting connections on background threads and return.

        Args:
            port: Port to bind, 0 for any free port.
            host: Address to bind.
            on_ready: Called once with no arguments when listening.

        Raises:
            RuntimeError: If this server is already listening.
            OSError: If the address cannot be bound.
        """
        if self.is_listening:
            raise RuntimeError("Server is already listening")

        self.config.host = host
        self.config.port = port
        self.config.validate()
        self._setup_logging()

        listener = Listener(self.config, self.handle_request)
        listener.start(on_ready=on_ready)
        self._listener = listener
        return self

    @property
    def is_listening(self) -> bool:
        return self._listener is not None and self._listener.is_running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port when listening on port 0."""
        if self._listener is not None:
            return self._listener.address
        return (self.config.host, self.config.port)

    def close(self) -> None:
        """Stop listening. Safe to call when not listening."""
        if self._listener is not None:
            self._listener.shutdown()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the server stops.

        Returns:
            True if it stopped, False on timeout.
        """
        if self._listener is None:
            return True
        return self._listener.wait_for_shutdown(timeout)

    def serve_forever(self) -> None:
        """
        Block the calling thread until SIGINT/SIGTERM or close().

        Must be called after listen().
        """
        if self._listener is None:
            raise RuntimeError("Call listen() before serve_forever()")

        in_main_thread = threading.current_thread() is threading.main_thread()
        if in_main_thread:
            self._setup_signals()
        try:
            # Short waits keep the main thread responsive to signals.
            while not self.wait(timeout=0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.close()
            if in_main_thread:
                self._restore_signals()

    def _setup_signals(self) -> None:
        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.close()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        logging.getLogger("tinyserve").setLevel(level)

    def __enter__(self) -> "HttpServer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def create_app(config: Optional[ServerConfig] = None) -> HttpServer:
    """
    Create the process-wide server. Same as ``HttpServer.create``.

    Raises:
        ServerAlreadyCreatedError: If a server was already created.
    """
    return HttpServer.create(config)
