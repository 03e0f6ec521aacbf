"""
=============================================================================
MIDDLEWARE
=============================================================================

Middleware is code that runs between the listener receiving a request
and the final stage (route handler or default responder):

    request ──► LoggingMiddleware ──► your middleware ──► ... ──► FINAL

Each one receives ``(request, response, next)`` and either calls
``next()`` to continue or finalizes the response itself to stop the
chain. Plain functions work too; see ``FunctionMiddleware``.

=============================================================================
"""

from .base import (
    Middleware,
    FunctionMiddleware,
    Next,
    as_middleware,
    function_middleware,
)
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    # Base classes
    "Middleware",
    "FunctionMiddleware",
    "Next",
    "as_middleware",
    "function_middleware",

    # Built-in middleware
    "LoggingMiddleware",
    "RequestLog",
]
