"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable in one dataclass, validated once at startup.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m apiserver --tls --port 9443                      │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── API_PORT=9443 API_TLS=1 python -m apiserver                │
    │                                                                      │
    │   3. Defaults below                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PLAINTEXT VS TLS
=============================================================================

    tls=False   plain TCP, default port 8080
    tls=True    TLS 1.2+ over TCP, default port 8443, needs certfile+keyfile

Leave `port` as None to get the default for the chosen transport. Port 0
asks the OS for a free port (tests use this).

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_HTTP_PORT = 8080
DEFAULT_HTTPS_PORT = 8443

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Invalid configuration, detected at startup."""


@dataclass
class ServerConfig:
    """
    Configuration for the API server.

    NETWORK     host, port, backlog
    SECURITY    tls, certfile, keyfile
    HTTP        max_request_size, server_name
    TIMEOUTS    handshake_timeout, read_timeout, write_timeout
    LOGGING     log_level
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: Optional[int] = None
    backlog: int = 128

    # ─────────────────────────────────────────────────────────────────────
    # SECURITY
    # ─────────────────────────────────────────────────────────────────────

    tls: bool = False
    certfile: Optional[str] = None
    """PEM certificate chain (server certificate first)."""

    keyfile: Optional[str] = None
    """PEM private key matching certfile."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    server_name: str = "apiserver/1.0"

    # ─────────────────────────────────────────────────────────────────────
    # PER-STAGE TIMEOUTS (seconds, None = wait forever)
    # ─────────────────────────────────────────────────────────────────────

    # asyncio cannot run a TLS handshake without a deadline, so None here
    # means one day (session.UNBOUNDED_SSL_HANDSHAKE_TIMEOUT)
    handshake_timeout: Optional[float] = 30.0
    read_timeout: Optional[float] = 30.0
    write_timeout: Optional[float] = 30.0

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    @property
    def effective_port(self) -> int:
        """Configured port, or the transport's default."""
        if self.port is not None:
            return self.port
        return DEFAULT_HTTPS_PORT if self.tls else DEFAULT_HTTP_PORT

    @property
    def scheme(self) -> str:
        return "https" if self.tls else "http"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            API_HOST        Bind address (default: 0.0.0.0)
            API_PORT        Port (default: 8080, or 8443 with TLS)
            API_TLS         "1"/"true"/"yes"/"on" enables TLS
            API_CERT_FILE   PEM certificate chain
            API_KEY_FILE    PEM private key
            API_TIMEOUT     Handshake/read/write timeout in seconds
            API_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR
        """
        port = os.getenv("API_PORT")
        timeout = os.getenv("API_TIMEOUT")
        stage_timeout = float(timeout) if timeout else 30.0

        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(port) if port else None,
            tls=os.getenv("API_TLS", "").strip().lower() in _TRUE_VALUES,
            certfile=os.getenv("API_CERT_FILE"),
            keyfile=os.getenv("API_KEY_FILE"),
            handshake_timeout=stage_timeout,
            read_timeout=stage_timeout,
            write_timeout=stage_timeout,
            log_level=os.getenv("API_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Fail fast on bad values.

        Raises:
            ConfigError: Describing the first problem found.
        """
        if not 0 <= self.effective_port < 65536:
            raise ConfigError(f"Invalid port: {self.effective_port}. Must be 0-65535.")

        if self.tls and not (self.certfile and self.keyfile):
            raise ConfigError("TLS requires both certfile and keyfile")

        if self.backlog < 1:
            raise ConfigError("backlog must be >= 1")

        if self.max_request_size < 1:
            raise ConfigError("max_request_size must be >= 1")

        for name in ("handshake_timeout", "read_timeout", "write_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be > 0")
