"""
=============================================================================
APISERVER - Minimal HTTP/HTTPS User REST API
=============================================================================

A small single-process server that answers a JSON REST API over a shared
in-memory user registry. Plain HTTP or HTTPS (TLS 1.2+), never both from
one instance.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       APISERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Listener ──accept──► Session ──route──► Router ──► UserHandlers    │
    │                          │                                 │         │
    │                          │ one request, one response       ▼         │
    │                          ▼                             Registry      │
    │                       CLOSING                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    GET  /api/users        list every user
    GET  /api/users/<id>   one user (200 {"error": "User not found"} if missing)
    POST /api/users        create a user from a JSON object

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    apiserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m apiserver)
    ├── server.py            # APIServer: wiring + event loop
    ├── config.py            # ServerConfig dataclass
    ├── registry.py          # In-memory user store
    ├── tls.py               # Server SSLContext
    ├── core/
    │   ├── listener.py      # Accept loop
    │   ├── session.py       # Per-connection state machine
    │   └── access_log.py    # One line per answered request
    ├── http/
    │   ├── request.py       # Request parsing
    │   ├── response.py      # JSON response serialization
    │   ├── router.py        # Routes + result-to-response mapping
    │   └── status_codes.py  # Status code enum
    └── handlers/
        └── users.py         # /api/users endpoints

=============================================================================
QUICK START
=============================================================================

    from apiserver import APIServer, ServerConfig

    server = APIServer(ServerConfig(port=8080))
    server.run()

    # HTTPS
    server = APIServer(ServerConfig(tls=True, certfile="cert.pem", keyfile="key.pem"))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ConfigError, ServerConfig
from .registry import Registry
from .server import APIServer

__all__ = [
    "APIServer",
    "ConfigError",
    "Registry",
    "ServerConfig",
    "__version__",
]
