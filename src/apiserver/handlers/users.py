"""
=============================================================================
USER ENDPOINTS
=============================================================================

    GET  /api/users        → {"users": [User, ...]}                     200
    GET  /api/users/{id}   → User                                       200
                           → {"error": "User not found"}                200 (!)
    POST /api/users        → {"message": "User created", "user": User}  201
                           → {"error": <why the body was rejected>}     400

Example session:

    $ curl -s -X POST http://localhost:8080/api/users -d '{"name":"Carol"}'
    {"message":"User created","user":{"name":"Carol","id":3}}

    $ curl -s http://localhost:8080/api/users/3
    {"name":"Carol","id":3}

    $ curl -s http://localhost:8080/api/users/99
    {"error":"User not found"}

=============================================================================
"""

from ..http.request import HTTPRequest
from ..http.router import Failure, FailureKind, RouteResult, Router, Success
from ..http.status_codes import HTTPStatus
from ..registry import MalformedPayload, Registry, UserNotFound


class UserHandlers:
    """
    The three user actions, bound to one Registry.

    Usage:
        handlers = UserHandlers(Registry())
        handlers.register(router)
    """

    def __init__(self, registry: Registry):
        self.registry = registry

    def register(self, router: Router) -> Router:
        """
        Add the user routes to `router`.

        The exact list route is registered before the prefix lookup route.
        """
        router.add_route("/api/users", self.list_users, method="GET", name="list_users")
        router.add_route("/api/users/*id", self.get_user, method="GET", name="get_user")
        router.add_route("/api/users", self.create_user, method="POST", name="create_user")
        return router

    def list_users(self, request: HTTPRequest) -> RouteResult:
        return Success(HTTPStatus.OK, {"users": self.registry.list_all()})

    def get_user(self, request: HTTPRequest) -> RouteResult:
        # Everything after "/api/users/", possibly "" or "a/b"
        user_id = request.path_params.get("id", "")
        try:
            return Success(HTTPStatus.OK, self.registry.get(user_id))
        except UserNotFound:
            return Failure(FailureKind.USER_NOT_FOUND)

    def create_user(self, request: HTTPRequest) -> RouteResult:
        try:
            user = self.registry.create_from_json(request.body)
        except MalformedPayload as e:
            return Failure(FailureKind.BAD_REQUEST, str(e))
        return Success(HTTPStatus.CREATED, {"message": "User created", "user": user})
