"""
=============================================================================
LISTENER: ACCEPT LOOP
=============================================================================

Binds the listening socket and turns every accepted connection into a
Session running as its own task.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Listener Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start()                                                           │
    │        ├──► _create_socket()   SO_REUSEADDR, non-blocking            │
    │        ├──► bind()             fatal on failure (port in use, ...)   │
    │        └──► listen(backlog)                                          │
    │                                                                      │
    │    serve_forever()                                                   │
    │        └──► loop.sock_accept() ──► raw socket                        │
    │                                        └──► Session(sock).run()      │
    │                                                                      │
    │    close()             stop accepting (live sessions finish alone)   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The accepted socket reaches the Session untouched. No transport, and so
no read, happens before the Session decides whether the first bytes are
a TLS ClientHello or an HTTP request line.

FIRE AND FORGET
───────────────
Each Session runs in its own task and the accept loop goes straight back
to accepting. The Listener holds the tasks only so they are not garbage
collected mid-flight: it never waits for one, never cancels one, and has
no connection limit.

ACCEPT ERRORS
─────────────
A failed accept() (e.g. EMFILE, or the peer resetting before we got to
it) is logged and the loop keeps accepting after a short pause. Only bind
failures are fatal.

=============================================================================
"""

import asyncio
import logging
import socket
import ssl
from typing import Optional, Set, Tuple

from ..config import ServerConfig
from ..http.router import Router
from .session import Session


logger = logging.getLogger(__name__)


# Pause after a failed accept() so EMFILE does not spin the loop
ACCEPT_RETRY_DELAY = 0.1


class Listener:
    """
    Accepts connections and spawns one Session per connection.

    Usage:
        listener = Listener(config, router, ssl_context=None)
        await listener.start()
        await listener.serve_forever()
    """

    def __init__(
        self,
        config: ServerConfig,
        router: Router,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self.config = config
        self.router = router
        self.ssl_context = ssl_context
        self._sock: Optional[socket.socket] = None
        self._accept_task: Optional[asyncio.Task] = None
        self._sessions: Set[asyncio.Task] = set()
        self._closed = False
        self._bound: Optional[Tuple[str, int]] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Actual bound (host, port). Differs from the config when port is 0."""
        if self._bound is None:
            return (self.config.host, self.config.effective_port)
        return self._bound

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        sock.setblocking(False)
        return sock

    async def start(self) -> None:
        """
        Bind and listen.

        Raises:
            OSError: The address could not be bound.
        """
        sock = self._create_socket()
        host, port = self.config.host, self.config.effective_port

        try:
            sock.bind((host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise

        self._sock = sock
        self._bound = sock.getsockname()[:2]
        bound_host, bound_port = self._bound
        logger.info(
            f"Listening on {self.config.scheme}://{bound_host}:{bound_port}"
        )

    async def serve_forever(self) -> None:
        """Accept until close() is called."""
        if self._sock is None:
            await self.start()
        if self._closed:
            return

        self._accept_task = asyncio.ensure_future(self._accept_loop())
        # Runs even when close() cancels the task before its first step
        self._accept_task.add_done_callback(lambda _: self._sock.close())
        await asyncio.wait({self._accept_task})
        if not self._accept_task.cancelled():
            self._accept_task.result()

    async def _accept_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                conn, _ = await loop.sock_accept(self._sock)
            except OSError as e:
                logger.warning(f"Accept failed: {e}")
                await asyncio.sleep(ACCEPT_RETRY_DELAY)
                continue
            self._spawn(conn)

    def _spawn(self, conn: socket.socket) -> None:
        try:
            # Small JSON responses go out immediately
            conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass  # peer already gone; the Session finds out on first I/O

        session = Session(conn, self.router, self.config, self.ssl_context)
        task = asyncio.ensure_future(session.run())
        self._sessions.add(task)
        task.add_done_callback(self._sessions.discard)

    def close(self) -> None:
        """Stop accepting. Idempotent."""
        if self._closed:
            return
        self._closed = True
        logger.info("Listener closing")

        if self._accept_task is not None:
            self._accept_task.cancel()
        elif self._sock is not None:
            self._sock.close()

    async def wait_closed(self) -> None:
        """Wait for the accept loop to exit. Live sessions are not awaited."""
        if self._accept_task is not None:
            await asyncio.wait({self._accept_task})
