"""
Networking layer: the listening socket, per-connection framing and the
worker pool that serves connections.
"""

from .connection import Connection, ConnectionState, RequestTooLargeError
from .listener import Listener, RequestHandler
from .thread_pool import ThreadPool

__all__ = [
    "Connection",
    "ConnectionState",
    "RequestTooLargeError",
    "Listener",
    "RequestHandler",
    "ThreadPool",
]
