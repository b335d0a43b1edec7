"""
=============================================================================
USER REGISTRY
=============================================================================

The in-memory user store. It lives for the whole process, is created once
by the server with a small seed, and is handed to the user handlers
explicitly (there is no module-level singleton).

=============================================================================
IDENTIFIER ASSIGNMENT
=============================================================================

A new user is stored under str(size_before_insert + 1), and the same number
is written into the payload as an integer "id" field:

    size 2 ──create({"name": "Carol"})──► key "3", {"name": "Carol", "id": 3}

This is NOT max-plus-one. It only stays collision free because nothing is
ever deleted. The computation and the insert happen under one lock, so two
concurrent creations can never observe the same size.

=============================================================================
"""

import json
import logging
import math
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


logger = logging.getLogger(__name__)

User = Dict[str, Any]

DEFAULT_SEED: Dict[str, User] = {
    "1": {"id": 1, "name": "Alice"},
    "2": {"id": 2, "name": "Bob"},
}


class RegistryError(Exception):
    """Base class for registry failures."""


class UserNotFound(RegistryError):
    """No user is stored under the requested identifier."""

    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class MalformedPayload(RegistryError):
    """The creation payload is not a JSON object, or holds non-JSON values."""


def _reject_constant(name: str) -> Any:
    raise MalformedPayload(f"Invalid JSON number: {name}")


def _finite_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        # 1e400 and friends overflow to inf
        raise MalformedPayload(f"Invalid JSON number: {literal}")
    return value


class Registry:
    """
    Thread-safe mapping of identifier → user, iterated in insertion order.

    Usage:
        registry = Registry()                      # Alice and Bob
        registry = Registry({"1": {"echo": "HelloWorld"}})
        user = registry.create({"name": "Carol"})  # {"name": "Carol", "id": 3}
    """

    def __init__(self, seed: Optional[Mapping[str, User]] = None):
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}

        initial: Iterable[Tuple[str, User]] = (
            DEFAULT_SEED if seed is None else seed
        ).items()
        for user_id, user in initial:
            self._users[str(user_id)] = dict(user)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._users

    def list_all(self) -> List[User]:
        """Every stored user, oldest first."""
        with self._lock:
            return list(self._users.values())

    def get(self, user_id: str) -> User:
        """
        Look up a user by exact key.

        Raises:
            UserNotFound: Nothing stored under user_id.
        """
        with self._lock:
            try:
                return self._users[user_id]
            except KeyError:
                raise UserNotFound(user_id) from None

    def create(self, payload: Any) -> User:
        """
        Store a new user and return it.

        The payload's "id" field is set (or overwritten) with the integer
        form of the assigned key.

        Raises:
            MalformedPayload: payload is not a JSON object, or contains
                              something strict JSON cannot encode (NaN,
                              Infinity, non-JSON types).
        """
        if not isinstance(payload, dict):
            raise MalformedPayload(
                f"Expected a JSON object, got {type(payload).__name__}"
            )
        try:
            json.dumps(payload, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise MalformedPayload(str(e)) from e

        user = dict(payload)
        with self._lock:
            new_id = str(len(self._users) + 1)
            user["id"] = int(new_id)
            self._users[new_id] = user

        logger.debug(f"Created user {new_id}")
        return user

    def create_from_json(self, body: bytes) -> User:
        """
        Decode a request body and create a user from it.

        Raises:
            MalformedPayload: Body is not UTF-8, not strict JSON (NaN,
                              Infinity and overflowing numbers are
                              refused), or not an object.
        """
        try:
            payload = json.loads(
                body.decode("utf-8"),
                parse_constant=_reject_constant,
                parse_float=_finite_float,
            )
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayload(str(e)) from e
        return self.create(payload)
