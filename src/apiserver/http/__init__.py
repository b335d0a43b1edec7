"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       raw bytes ──► HTTPRequest                          │
    │ router.py        HTTPRequest ──► RouteResult ──► HTTPResponse       │
    │ response.py      HTTPResponse ──► raw bytes                         │
    │ status_codes.py  HTTPStatus (code + reason phrase)                  │
    └─────────────────────────────────────────────────────────────────────┘

Nothing in this package does I/O. The Session (apiserver.core) reads
bytes from the connection, hands them through this layer, and writes the
result back.

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import HTTPResponse, json_response, encode_json, JSON_CONTENT_TYPE
from .router import (
    Router,
    Route,
    RouteMatch,
    RouteResult,
    Success,
    Failure,
    FailureKind,
    build_response,
)
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Responses
    "HTTPResponse",
    "json_response",
    "encode_json",
    "JSON_CONTENT_TYPE",

    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "RouteResult",
    "Success",
    "Failure",
    "FailureKind",
    "build_response",

    # Status codes
    "HTTPStatus",
]
