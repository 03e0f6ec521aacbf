"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware run in registration order, each deciding whether the request
moves on:

    ┌────────────────────────────────────────────────────────────────────┐
    │                 CONTINUATION-PASSING CHAIN                         │
    ├────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   mw[0](req, res, next) ──next()──► mw[1](req, res, next) ──► ...  │
    │          │                                 │                        │
    │          │ returns without next()          │                        │
    │          ▼                                 ▼                        │
    │       HALT (mw[0] owns the response)    HALT                        │
    │                                                                     │
    │   ... mw[n-1] ──next()──► FINAL (route handler or default reply)   │
    │                                                                     │
    └────────────────────────────────────────────────────────────────────┘

Unlike a wrap-the-handler pipeline, nothing is returned up the chain.
A middleware that wants to act after the rest of the pipeline simply
does so after ``next()`` returns; by then the response may already be
finished.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union
import inspect

from ..http.request import IncomingRequest
from ..http.response import ServerResponse


# Next is the continuation handed to each middleware. Calling it runs the
# rest of the chain; not calling it ends the request at this middleware.
Next = Callable[[], None]

MiddlewareFunc = Callable[..., None]


class Middleware(ABC):
    """
    Abstract base class for class-style middleware.

    =========================================================================
    THE MIDDLEWARE CONTRACT
    =========================================================================

        class RequireToken(Middleware):
            def __call__(self, request, response, next):
                if not request.get_header("authorization"):
                    # Halt: this middleware finalizes the response
                    response.write_head(401, {"Content-Type": "text/plain"})
                    response.end("Unauthorized")
                    return

                next()   # continue the chain

    Rules:
    - Call ``next()`` at most once.
    - If ``next()`` is not called, finalize the response yourself.

    =========================================================================
    """

    @abstractmethod
    def __call__(self, request: IncomingRequest, response: ServerResponse, next: Next) -> None:
        """
        Process the request.

        Args:
            request: The incoming request.
            response: The response to write to.
            next: Continuation; call it to hand the request on.
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    Wraps a plain function as middleware.

    Both signatures are accepted:

        def audit(request, response, next):   # may continue the chain
            ...
            next()

        def block(request, response):         # always terminates the chain
            response.end("nope")
    """

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)
        self._takes_next = _accepts_continuation(func)

    def __call__(self, request: IncomingRequest, response: ServerResponse, next: Next) -> None:
        if self._takes_next:
            self._func(request, response, next)
        else:
            self._func(request, response)

    @property
    def name(self) -> str:
        return self._name

    @property
    def takes_next(self) -> bool:
        return self._takes_next

    @property
    def func(self) -> MiddlewareFunc:
        return self._func


def _accepts_continuation(func: MiddlewareFunc) -> bool:
    """True if ``func`` can be called with (request, response, next)."""
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        # No introspectable signature (some builtins); assume the full form.
        return True

    positional = 0
    for param in signature.parameters.values():
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    return positional >= 3


def as_middleware(middleware: Union[Middleware, MiddlewareFunc]) -> Middleware:
    """
    Normalize anything ``use()`` accepts into a Middleware instance.

    Raises:
        TypeError: If ``middleware`` is not callable.
    """
    if isinstance(middleware, Middleware):
        return middleware
    if not callable(middleware):
        raise TypeError(f"Middleware must be callable, got {type(middleware).__name__}")
    return FunctionMiddleware(middleware)


def function_middleware(func: MiddlewareFunc) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware.

        @function_middleware
        def stamp(request, response, next):
            response.set_header("X-Stamp", "1")
            next()

        server.use(stamp)
    """
    return FunctionMiddleware(func)
