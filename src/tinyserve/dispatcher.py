"""
=============================================================================
REQUEST DISPATCHER
=============================================================================

The per-request pipeline: run the middleware chain, then, if nobody
halted it, the final stage.

=============================================================================
STATES OF ONE REQUEST
=============================================================================

    ┌─────────┐  cursor = 0    ┌──────────────────────┐
    │  START  │ ─────────────► │  RUNNING-MIDDLEWARE  │ ◄──┐
    └─────────┘                │         (i)          │    │ next(), i+1 < n
         │                     └──────────┬───────────┘ ───┘
         │ n == 0                         │
         │                                ├── returns without next() ──► HALT
         │                                │
         │                                │ next(), i+1 == n
         ▼                                ▼
    ┌─────────────────────────────────────────────────────────────────┐
    │  FINAL                                                          │
    │                                                                 │
    │   method not GET/POST/PUT/DELETE  → 405 "Method X not allowed"  │
    │   no routes registered            → 200 "Received X request for │
    │                                          <url>"                 │
    │   exact method + url match        → route handler               │
    │   url registered, other method    → 405 "Method X not allowed"  │
    │   otherwise                       → 404 "Not found"             │
    └─────────────────────────────────────────────────────────────────┘

Route handlers replace the default responder for their URL; at most one
of them writes the response.

=============================================================================
EMPTY CHAIN
=============================================================================

With ``strict_chain=True`` a request arriving before any middleware was
registered raises ``EmptyMiddlewareChainError`` instead of going to
FINAL. That mirrors servers that require at least one middleware; the
default is to go straight to FINAL.

=============================================================================
"""

import logging
from typing import List, Tuple, Union

from .http.request import IncomingRequest
from .http.response import ServerResponse
from .http.router import RouteTable, Resolution, ROUTABLE_METHODS
from .http.status_codes import HTTPStatus
from .middleware.base import FunctionMiddleware, Middleware, MiddlewareFunc, as_middleware


logger = logging.getLogger(__name__)

PLAIN_TEXT = {"Content-Type": "text/plain"}


class DispatchError(Exception):
    """Base class for errors raised while running the pipeline."""


class EmptyMiddlewareChainError(DispatchError):
    """A request arrived with no middleware registered and strict_chain on."""


class MiddlewareChainError(DispatchError):
    """A middleware called its continuation more than once."""


class Dispatcher:
    """
    Runs middleware in order, then the final stage.

    Usage:
        dispatcher = Dispatcher(RouteTable())
        dispatcher.use(LoggingMiddleware())
        dispatcher.dispatch(request, response)
    """

    def __init__(self, routes: RouteTable, strict_chain: bool = False):
        """
        Args:
            routes: Table consulted by the final stage.
            strict_chain: Raise EmptyMiddlewareChainError when dispatching
                          with no middleware registered.
        """
        self.routes = routes
        self.strict_chain = strict_chain
        self._middlewares: List[Middleware] = []

    def use(self, middleware: Union[Middleware, MiddlewareFunc]) -> Middleware:
        """Append middleware. Registration order is execution order."""
        mw = as_middleware(middleware)
        self._middlewares.append(mw)
        logger.debug(f"Added middleware: {mw.name}")
        return mw

    @property
    def middlewares(self) -> Tuple[Middleware, ...]:
        return tuple(self._middlewares)

    def __len__(self) -> int:
        return len(self._middlewares)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def dispatch(self, request: IncomingRequest, response: ServerResponse) -> None:
        """
        Run one request through the pipeline.

        Raises:
            EmptyMiddlewareChainError: strict_chain is on and no middleware
                                       is registered.
            MiddlewareChainError: A middleware called next() twice.
            Exception: Anything a middleware or handler raises propagates.
        """
        # Snapshot: middleware added while this request runs does not join it.
        chain = tuple(self._middlewares)

        if not chain and self.strict_chain:
            raise EmptyMiddlewareChainError(
                f"No middleware registered to handle {request.method} {request.url}"
            )

        entries = tuple(_entry_point(mw) for mw in chain)
        _Continuation(self, chain, entries, 0, request, response)()

    # =========================================================================
    # FINAL STAGE
    # =========================================================================

    def respond_final(self, request: IncomingRequest, response: ServerResponse) -> None:
        """Route handler or default reply, reached only if no middleware halted."""
        if response.finished:
            logger.warning(
                f"{request.method} {request.url}: response already finalized "
                f"before the final stage, skipping"
            )
            return

        method, url = request.method, request.url

        if method not in ROUTABLE_METHODS:
            self._reply(response, HTTPStatus.METHOD_NOT_ALLOWED, f"Method {method} not allowed")
            return

        if not len(self.routes):
            self._reply(response, HTTPStatus.OK, f"Received {method} request for {url}")
            return

        resolution = self.routes.resolve(method, url)

        if resolution.outcome is Resolution.MATCHED:
            resolution.route.handler(request, response)
        elif resolution.outcome is Resolution.METHOD_NOT_ALLOWED:
            self._reply(
                response,
                HTTPStatus.METHOD_NOT_ALLOWED,
                f"Method {method} not allowed",
                Allow=", ".join(resolution.allowed),
            )
        else:
            self._reply(response, HTTPStatus.NOT_FOUND, "Not found")

    @staticmethod
    def _reply(response: ServerResponse, status: int, text: str, **headers: str) -> None:
        response.write_head(status, {**PLAIN_TEXT, **headers})
        response.end(text)


def _entry_point(middleware: Middleware) -> MiddlewareFunc:
    """The callable to invoke for ``middleware``, unwrapped where possible."""
    if isinstance(middleware, FunctionMiddleware) and middleware.takes_next:
        return middleware.func
    return middleware


class _Continuation:
    """
    The ``next`` handed to ``chain[index - 1]``; calling it runs ``chain[index]``.

    While a request is in flight each middleware holds two stack frames
    (its own and this one), so a chain can be about half of
    ``sys.getrecursionlimit()`` long.
    """

    __slots__ = ("dispatcher", "chain", "entries", "index", "request", "response", "called")

    def __init__(self, dispatcher, chain, entries, index, request, response):
        self.dispatcher = dispatcher
        self.chain = chain
        self.entries = entries
        self.index = index
        self.request = request
        self.response = response
        self.called = False

    def __call__(self) -> None:
        if self.called:
            raise MiddlewareChainError(
                f"{self.chain[self.index - 1].name} called next() more than once"
            )
        self.called = True

        index = self.index
        if index == len(self.chain):
            self.dispatcher.respond_final(self.request, self.response)
            return

        following = _Continuation(
            self.dispatcher, self.chain, self.entries, index + 1, self.request, self.response
        )
        self.entries[index](self.request, self.response, following)

        if not following.called:
            logger.debug(f"Chain halted by {self.chain[index].name} ({index + 1}/{len(self.chain)})")
