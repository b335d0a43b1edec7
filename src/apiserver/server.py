"""
=============================================================================
API SERVER
=============================================================================

Ties the pieces together and runs the event loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         APIServer                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerConfig ──► validate()                                        │
    │                                                                      │
    │   Registry (seeded) ──► UserHandlers ──► Router                      │
    │                                            │                         │
    │   [ssl.SSLContext] ────────────────────┐   │                         │
    │                                        ▼   ▼                         │
    │                                      Listener ──► Session per conn   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Startup failures (bad config, unreadable certificate, port in use) are
logged and re-raised from run()/serve(). The CLI turns them into exit
status 1. Once serving, nothing a client does can stop the server.

Usage:
    server = APIServer(ServerConfig(port=8080))
    server.run()                     # blocks until SIGINT/SIGTERM

    # From another thread (tests):
    threading.Thread(target=server.run, daemon=True).start()
    server.wait_until_ready(5.0)
    host, port = server.address
    server.shutdown()

=============================================================================
"""

import asyncio
import logging
import signal
import ssl
import threading
from typing import Mapping, Optional, Tuple

from .config import ServerConfig
from .core import Listener
from .handlers import UserHandlers
from .http import Router
from .registry import Registry, User
from .tls import create_server_context


logger = logging.getLogger(__name__)


class APIServer:
    """
    The user REST API server, plaintext or TLS.

    Args:
        config: Server configuration. Defaults to plaintext on 8080.
        registry: User store to serve. Defaults to a Registry with the
                  standard seed.
        seed: Seed for a new Registry (ignored when `registry` is given).
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        registry: Optional[Registry] = None,
        seed: Optional[Mapping[str, User]] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.registry = registry if registry is not None else Registry(seed)

        self.router = Router()
        UserHandlers(self.registry).register(self.router)

        self._listener: Optional[Listener] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = threading.Event()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self) -> None:
        """
        Set up logging, print the banner, and serve until stopped.

        Raises:
            OSError, ssl.SSLError: Startup failed (bind or certificate).
        """
        self._setup_logging()
        try:
            asyncio.run(self.serve(banner=True))
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")

    async def serve(self, banner: bool = False) -> None:
        """Coroutine form of run(): bind, then accept until shutdown()."""
        self._loop = asyncio.get_running_loop()

        ssl_context = self._load_tls_context()
        self._listener = Listener(self.config, self.router, ssl_context)
        await self._listener.start()

        self._install_signal_handlers()
        if banner:
            self._print_startup_banner()
        self._ready.set()

        try:
            await self._listener.serve_forever()
        except asyncio.CancelledError:
            pass
        finally:
            self._listener.close()
            await self._listener.wait_closed()
            self._ready.clear()
            logger.info("Server stopped")

    def shutdown(self) -> None:
        """Stop accepting. Safe to call from any thread, and more than once."""
        if self._loop is None or self._listener is None:
            return
        logger.info("Shutting down server...")
        try:
            self._loop.call_soon_threadsafe(self._listener.close)
        except RuntimeError:
            pass  # loop already closed

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is accepting. False on timeout."""
        return self._ready.wait(timeout)

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), or the configured one before startup."""
        if self._listener is not None:
            return self._listener.address
        return (self.config.host, self.config.effective_port)

    # =========================================================================
    # SETUP
    # =========================================================================

    def _load_tls_context(self) -> Optional[ssl.SSLContext]:
        if not self.config.tls:
            return None
        try:
            return create_server_context(self.config.certfile, self.config.keyfile)
        except (OSError, ssl.SSLError) as e:
            logger.error(
                f"Failed to load certificate {self.config.certfile} / key {self.config.keyfile}: {e}"
            )
            raise

    def _install_signal_handlers(self) -> None:
        """SIGINT/SIGTERM stop the listener. Skipped outside the main thread."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows, or not the main thread
                return

    def _on_signal(self, signum: int) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
        if self._listener is not None:
            self._listener.close()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("apiserver").setLevel(level)

    def _print_startup_banner(self) -> None:
        host, port = self.address
        print()
        print(f"REST API running on {self.config.scheme}://{host}:{port}")
        print()
        print("Endpoints:")
        for line in self.router.describe_routes():
            print(f"  {line}")
        print()

