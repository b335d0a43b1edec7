"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking side of the server: everything that touches a socket.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            LISTENER                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Binds the listening socket                                       │
    │  • Accepts forever, one new Session task per connection             │
    │  • Hands each Session the raw socket, then never waits on it        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one task per connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                            SESSION                                   │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • [TLS handshake] → read one request → route → write → close       │
    │  • Owns the accepted socket and everything read from it until DONE │
    │  • Transport failures abandon the session; nothing reaches a client │
    └─────────────────────────────────────────────────────────────────────┘

All of it runs on ONE asyncio event loop. Sessions interleave at their
await points (handshake, read, write); none of them ever blocks the loop.

=============================================================================
"""

from .listener import Listener
from .session import Session, SessionState
from .access_log import RequestLog

__all__ = [
    "Listener",       # Accept loop
    "Session",        # Per-connection state machine
    "SessionState",   # Its states
    "RequestLog",     # Access-log entry
]
