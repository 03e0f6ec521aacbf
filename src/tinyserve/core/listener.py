"""
=============================================================================
LISTENER
=============================================================================

Owns the listening socket, the accept thread and the worker pool, and
turns bytes on a connection into (request, response) pairs for the
request handler (normally ``Dispatcher.dispatch``).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           Listener                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   start(on_ready)                                                    │
    │     ├──► socket() / bind() / listen()    bind error → logged, raised │
    │     ├──► ThreadPool.start()                                          │
    │     ├──► accept thread                                               │
    │     └──► on_ready()                      exactly once                │
    │                                                                      │
    │   accept thread                                                      │
    │     └──► accept() ─► Connection ─► pool.submit(_process_connection)  │
    │                                        └── queue full → 503           │
    │                                                                      │
    │   worker: _process_connection(conn)                                  │
    │     └──► read ─► parse ─► handler(request, response) ─► keep-alive?  │
    │                    │             │                                   │
    │                    │             ├── raised      → 500 (if unsent)   │
    │                    │             └── never ended → 500               │
    │                    └── HTTPParseError → its status code              │
    │                                                                      │
    │   shutdown()                                                         │
    │     └──► stop accepting, close socket, drain pool                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

start() returns as soon as the socket is listening; the caller's thread
is never blocked.

=============================================================================
"""

import socket
import logging
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..http.request import IncomingRequest, RequestParser, HTTPParseError
from ..http.response import ServerResponse
from ..http.status_codes import HTTPStatus
from .connection import Connection, ConnectionState, RequestTooLargeError
from .thread_pool import ThreadPool


logger = logging.getLogger(__name__)

RequestHandler = Callable[[IncomingRequest, ServerResponse], None]

# accept() wakes up this often to notice shutdown.
ACCEPT_POLL_INTERVAL = 0.5


class Listener:
    """
    TCP listener feeding requests to a handler.

    Usage:
        listener = Listener(config, dispatcher.dispatch)
        listener.start(on_ready=lambda: print("up"))
        ...
        listener.shutdown()
    """

    def __init__(self, config: ServerConfig, request_handler: RequestHandler):
        self.config = config
        self._request_handler = request_handler
        self._parser = RequestParser(max_request_size=config.max_request_size)

        self._socket: Optional[socket.socket] = None
        self._pool: Optional[ThreadPool] = None
        self._accept_thread: Optional[threading.Thread] = None

        self._running = False
        self._lock = threading.Lock()
        self._shutdown_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port). With port 0 this is the port the OS
        picked, once started.
        """
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return (host, port)
        return (self.config.host, self.config.port)

    # =========================================================================
    # STARTUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def start(self, on_ready: Optional[Callable[[], None]] = None) -> None:
        """
        Bind, listen and start serving in background threads.

        Args:
            on_ready: Called once, with no arguments, after the socket is
                      listening.

        Raises:
            RuntimeError: If already running.
            OSError: If the address cannot be bound.
            Exception: Whatever on_ready raises, after the listener has been
                       shut down again.
        """
        with self._lock:
            if self._running:
                raise RuntimeError("Listener is already running")

            sock = self._create_socket()
            try:
                sock.bind((self.config.host, self.config.port))
                sock.listen(self.config.backlog)
            except OSError as e:
                logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
                sock.close()
                raise

            self._socket = sock
            self._pool = ThreadPool(
                min_workers=self.config.min_workers,
                max_workers=self.config.max_workers,
            )
            self._pool.start()

            self._running = True
            self._shutdown_event.clear()
            self._accept_thread = threading.Thread(
                target=self._accept_loop,
                name="tinyserve-accept",
                daemon=True,
            )
            self._accept_thread.start()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")

        if on_ready is not None:
            try:
                on_ready()
            except Exception:
                logger.error("on_ready callback failed, stopping listener")
                self.shutdown()
                raise

    # =========================================================================
    # ACCEPT LOOP (accept thread)
    # =========================================================================

    def _accept_loop(self) -> None:
        sock = self._socket
        try:
            while self._running:
                try:
                    client_socket, client_address = sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._running:
                        logger.error(f"Accept error: {e}")
                    break

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    keep_alive_timeout=self.config.keep_alive_timeout,
                    max_request_size=self.config.max_request_size,
                )
                self._hand_off(conn)
        finally:
            try:
                sock.close()
            except OSError:
                pass

    def _hand_off(self, conn: Connection) -> None:
        try:
            submitted = self._pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            submitted = False  # pool already stopping

        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    # =========================================================================
    # CONNECTION PROCESSING (worker threads)
    # =========================================================================

    def _process_connection(self, conn: Connection) -> None:
        """Serve requests on one connection until it closes or stops keeping alive."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except RequestTooLargeError as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                if not self._handle(conn, request):
                    break
                conn.set_keep_alive()

    def _handle(self, conn: Connection, request: IncomingRequest) -> bool:
        """
        Run the request handler for one request.

        Returns:
            True if the connection may serve another request.
        """
        conn.state = ConnectionState.PROCESSING
        keep_alive = self.config.keep_alive and request.is_keep_alive
        response = ServerResponse(
            conn.send_response,
            keep_alive=keep_alive,
            server_name=self.config.server_name,
        )

        try:
            self._request_handler(request, response)
        except Exception as e:
            logger.exception(f"[{conn.id}] Error handling {request.method} {request.url}: {e}")
            if not response.finished:
                self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")
            return False

        if not response.finished:
            logger.warning(
                f"[{conn.id}] {request.method} {request.url}: "
                f"handler returned without finalizing the response"
            )
            self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, "Response not finalized")
            return False

        if (response.get_header("Connection") or "").lower() == "close":
            return False
        return keep_alive

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        response = ServerResponse(
            conn.send_response,
            keep_alive=False,
            server_name=self.config.server_name,
        )
        response.write_head(status, {"Content-Type": "text/plain"})
        response.end(message)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, timeout: float = 5.0) -> None:
        """
        Stop accepting, close the socket and stop the workers. Safe to call
        more than once and from any thread.

        Args:
            timeout: Upper bound on waiting for in-flight connections.
        """
        with self._lock:
            if not self._running:
                self._shutdown_event.set()
                return
            logger.info("Shutting down listener...")
            self._running = False
            accept_thread, pool = self._accept_thread, self._pool

        if accept_thread is not None and accept_thread is not threading.current_thread():
            accept_thread.join(timeout=ACCEPT_POLL_INTERVAL * 4)

        if pool is not None:
            pool.shutdown(wait=True, timeout=timeout)

        with self._lock:
            self._socket = None
            self._accept_thread = None
            self._pool = None

        self._shutdown_event.set()
        logger.info("Listener stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Block until shutdown() completes.

        Returns:
            True if stopped, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
