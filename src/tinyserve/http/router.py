"""
=============================================================================
ROUTE TABLE
=============================================================================

One shared table of (method, exact URL) → handler, consulted once per
request by the dispatcher's final stage.

=============================================================================
LOOKUP
=============================================================================

    Registered:                         Request           Outcome
    ┌────────┬───────────┬─────────┐
    │ GET    │ /ilia     │ show    │    GET  /ilia   →   MATCHED (show)
    │ POST   │ /ilia     │ create  │    PUT  /ilia   →   METHOD_NOT_ALLOWED
    │ DELETE │ /users    │ purge   │    GET  /other  →   NOT_FOUND
    └────────┴───────────┴─────────┘

Matching is an exact string comparison against the request URL. There
are no path parameters, no wildcards and no prefix matching.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .request import IncomingRequest
from .response import ServerResponse


logger = logging.getLogger(__name__)


# Handler: finalizes the response itself; no continuation.
Handler = Callable[[IncomingRequest, ServerResponse], None]

ROUTABLE_METHODS = ("GET", "POST", "PUT", "DELETE")


@dataclass(frozen=True)
class Route:
    """A handler bound to one method and one exact URL."""

    method: str
    path: str
    handler: Handler = field(compare=False)


class Resolution(Enum):
    MATCHED = "matched"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    NOT_FOUND = "not_found"


@dataclass
class RouteResolution:
    """
    Result of looking a request up in the table.

    ``route`` is set only for MATCHED; ``allowed`` lists the methods
    registered for the URL (used for the Allow header on 405).
    """

    outcome: Resolution
    route: Optional[Route] = None
    allowed: List[str] = field(default_factory=list)


class RouteTable:
    """
    Insertion-ordered mapping of (METHOD, path) to Route.

    Usage:
        table = RouteTable()
        table.add("GET", "/ilia", show)

        table.match("GET", "/ilia")          # Route(GET /ilia)
        table.resolve("POST", "/ilia")       # METHOD_NOT_ALLOWED, allowed=["GET"]
    """

    def __init__(self):
        self._routes: Dict[Tuple[str, str], Route] = {}

    def add(self, method: str, path: str, handler: Handler) -> Route:
        """
        Register ``handler`` for ``method`` + ``path``.

        Re-registering an existing pair replaces the earlier handler.

        Raises:
            ValueError: If the method is not GET, POST, PUT or DELETE.
        """
        method = method.upper()
        if method not in ROUTABLE_METHODS:
            raise ValueError(
                f"Cannot register {method} {path}: method must be one of "
                f"{', '.join(ROUTABLE_METHODS)}"
            )

        key = (method, path)
        if key in self._routes:
            logger.warning(f"Replacing handler for {method} {path}")

        route = Route(method=method, path=path, handler=handler)
        self._routes[key] = route
        logger.debug(f"Registered route {method} {path}")
        return route

    def match(self, method: str, url: str) -> Optional[Route]:
        return self._routes.get((method.upper(), url))

    def allowed_methods(self, url: str) -> List[str]:
        return [method for method, path in self._routes if path == url]

    def resolve(self, method: str, url: str) -> RouteResolution:
        route = self.match(method, url)
        if route is not None:
            return RouteResolution(Resolution.MATCHED, route=route, allowed=[route.method])

        allowed = self.allowed_methods(url)
        if allowed:
            return RouteResolution(Resolution.METHOD_NOT_ALLOWED, allowed=allowed)

        return RouteResolution(Resolution.NOT_FOUND)

    def routes(self) -> List[Route]:
        return list(self._routes.values())

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self.routes())

    def __contains__(self, key: Tuple[str, str]) -> bool:
        method, path = key
        return (method.upper(), path) in self._routes
