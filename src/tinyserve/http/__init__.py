"""
=============================================================================
HTTP MESSAGE TYPES
=============================================================================

The request and response objects the listener hands to the dispatch
pipeline, the parser that produces requests, and the route table.

    ┌──────────────────┐   parse    ┌──────────────────┐
    │  raw bytes       │ ─────────► │ IncomingRequest  │──┐
    └──────────────────┘            └──────────────────┘  │  (req, res)
                                    ┌──────────────────┐  ├──────────► dispatcher
                                    │ ServerResponse   │──┘
                                    └────────┬─────────┘
                                             │ end()
                                             ▼
                                        send(bytes)

=============================================================================
"""

from .request import IncomingRequest, RequestParser, HTTPParseError
from .response import ServerResponse, ResponseFinishedError
from .router import (
    RouteTable,
    Route,
    RouteResolution,
    Resolution,
    Handler,
    ROUTABLE_METHODS,
)
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    # Requests
    "IncomingRequest",
    "RequestParser",
    "HTTPParseError",

    # Responses
    "ServerResponse",
    "ResponseFinishedError",

    # Routing
    "RouteTable",
    "Route",
    "RouteResolution",
    "Resolution",
    "Handler",
    "ROUTABLE_METHODS",

    # Status codes
    "HTTPStatus",
    "reason_phrase",
]
