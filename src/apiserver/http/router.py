"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, target) to an action and turns the action's outcome into a
status code and JSON body.

=============================================================================
ROUTE TABLE (first match wins)
=============================================================================

    ┌────────┬────────────────────┬──────────────────────────┬────────┐
    │ Method │ Target             │ Action                   │ Status │
    ├────────┼────────────────────┼──────────────────────────┼────────┤
    │ GET    │ /api/users         │ list users               │ 200    │
    │ GET    │ /api/users/*id     │ get user (id = the rest) │ 200    │
    │ POST   │ /api/users         │ create user              │ 201    │
    │ *      │ anything else      │ Endpoint not found       │ 404    │
    └────────┴────────────────────┴──────────────────────────┴────────┘

ORDER MATTERS. Routes are tried in registration order, and the exact
"/api/users" route is registered before the "/api/users/" prefix route.

A known target requested with the wrong method is also a 404. There is no
405 Method Not Allowed.

=============================================================================
RESULTS, NOT EXCEPTIONS
=============================================================================

Actions return a RouteResult:

    Success(status, body)      ──► status, body
    Failure(USER_NOT_FOUND)    ──► 200, {"error": "User not found"}
    Failure(BAD_REQUEST, msg)  ──► 400, {"error": msg}
    Failure(NO_ROUTE)          ──► 404, {"error": "Endpoint not found"}

Router.route() is the single boundary where an exception escaping an
action is converted into Failure(BAD_REQUEST, str(exc)). Nothing raised
while building a response gets past it.

=============================================================================
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .request import HTTPRequest
from .response import HTTPResponse, json_response
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


# =============================================================================
# ROUTE RESULTS
# =============================================================================

class FailureKind(Enum):
    """Application-level failures an action can report."""
    USER_NOT_FOUND = "user_not_found"
    BAD_REQUEST = "bad_request"
    NO_ROUTE = "no_route"


@dataclass
class Success:
    status: HTTPStatus
    body: Any


@dataclass
class Failure:
    kind: FailureKind
    message: str = ""


RouteResult = Union[Success, Failure]

# Handler: takes the request (with path_params filled in), returns a result
Handler = Callable[[HTTPRequest], RouteResult]


def result_status_and_body(result: RouteResult) -> tuple[HTTPStatus, Any]:
    """
    Decide the status code and JSON body for a route result.

    A missing user is answered with 200 and an error-shaped body, not 404.
    """
    if isinstance(result, Success):
        return result.status, result.body

    if result.kind is FailureKind.USER_NOT_FOUND:
        return HTTPStatus.OK, {"error": "User not found"}
    if result.kind is FailureKind.BAD_REQUEST:
        return HTTPStatus.BAD_REQUEST, {"error": result.message}
    if result.kind is FailureKind.NO_ROUTE:
        return HTTPStatus.NOT_FOUND, {"error": "Endpoint not found"}

    raise ValueError(f"Unhandled failure kind: {result.kind!r}")


def build_response(result: RouteResult, request: HTTPRequest) -> HTTPResponse:
    """Render a route result as the JSON response to `request`."""
    status, body = result_status_and_body(result)
    return json_response(
        status,
        body,
        keep_alive=request.is_keep_alive,
        version=request.version,
    )


# =============================================================================
# ROUTES
# =============================================================================

@dataclass
class Route:
    """
    A registered route.

        router.add_route("/api/users/*id", get_user, method="GET")

        Route(
            path="/api/users/*id",
            method="GET",
            handler=get_user,
            _pattern=re.compile(r"^/api/users/(?P<id>.*)$"),
            _param_names=["id"],
        )
    """

    path: str
    method: Optional[str]            # None = any method
    handler: Handler
    name: Optional[str] = None

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


class Router:
    """
    Ordered route table.

    Usage:
        router = Router()

        @router.get("/api/users")
        def list_users(request):
            return Success(HTTPStatus.OK, {"users": []})

        @router.get("/api/users/*id")
        def get_user(request):
            user_id = request.path_params["id"]
            ...

        result = router.route(request)
    """

    def __init__(self):
        self._routes: List[Route] = []

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Route:
        pattern, param_names = self._compile_pattern(path)
        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=handler,
            name=name or getattr(handler, "__name__", None),
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a route path into an anchored regex.

            "/api/users"      → ^/api/users$
            "/api/users/:id"  → ^/api/users/(?P<id>[^/]+)$
            "/api/users/*id"  → ^/api/users/(?P<id>.*)$

        `:name` captures one non-empty segment. `*name` captures the rest
        of the target, which may be empty or contain slashes, and must come
        last.
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                param_names.append(segment[1:])
                regex_parts.append(f"(?P<{segment[1:]}>[^/]+)")
            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                break
            else:
                regex_parts.append(re.escape(segment))

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    def route_decorator(self, path: str, method: Optional[str] = None, name: Optional[str] = None):
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method=method, name=name)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route_decorator(path, "GET", name)

    def post(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route_decorator(path, "POST", name)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def match(self, method: str, target: str) -> Optional[RouteMatch]:
        """
        First route whose method and pattern both match.

        The target is matched as-is: no trailing-slash or query stripping.
        """
        method = method.upper()
        for route in self._routes:
            if route.method and route.method != method:
                continue
            found = route._pattern.match(target) if route._pattern else None
            if found:
                return RouteMatch(route=route, params=found.groupdict())
        return None

    def route(self, request: HTTPRequest) -> RouteResult:
        """
        Dispatch a request. Never raises.

        Returns:
            The matched action's result, Failure(NO_ROUTE) when nothing
            matches, or Failure(BAD_REQUEST) when the action raised.
        """
        found = self.match(request.method, request.target)
        if found is None:
            return Failure(FailureKind.NO_ROUTE)

        request.path_params = found.params
        try:
            return found.route.handler(request)
        except Exception as e:
            logger.debug(f"{found.route.name} raised {type(e).__name__}: {e}")
            return Failure(FailureKind.BAD_REQUEST, str(e) or type(e).__name__)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """route() followed by build_response()."""
        return build_response(self.route(request), request)

    @property
    def routes(self) -> List[Route]:
        return list(self._routes)

    def describe_routes(self) -> List[str]:
        """One "METHOD path" line per route, for the startup banner."""
        return [f"{route.method or '*':<7} {route.path}" for route in self._routes]
