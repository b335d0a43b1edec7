"""
pytest configuration and fixtures.
"""

import json
import socket
import ssl
import threading
from typing import Dict, Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from apiserver import APIServer, Registry, ServerConfig
from apiserver.handlers import UserHandlers
from apiserver.http import Router


FIXTURES = Path(__file__).parent / "fixtures"
CERT_FILE = str(FIXTURES / "cert.pem")
KEY_FILE = str(FIXTURES / "key.pem")


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users/1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "Carol", "email": "carol@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: %d\r\n"
        b"Connection: close\r\n"
        b"\r\n"
    ) % len(body) + body


@pytest.fixture
def registry() -> Registry:
    """Registry with the default Alice/Bob seed."""
    return Registry()


@pytest.fixture
def echo_registry() -> Registry:
    """Registry seeded with a single non-user record."""
    return Registry({"1": {"echo": "HelloWorld"}})


@pytest.fixture
def router(registry: Registry) -> Router:
    """Router with the user endpoints over the default registry."""
    return UserHandlers(registry).register(Router())


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        handshake_timeout=5.0,
        read_timeout=5.0,
        write_timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def tls_config(config: ServerConfig) -> ServerConfig:
    """Test configuration serving HTTPS with the fixture certificate."""
    config.tls = True
    config.certfile = CERT_FILE
    config.keyfile = KEY_FILE
    return config


@pytest.fixture
def client_ssl_context() -> ssl.SSLContext:
    """Client context that trusts the fixture certificate."""
    return ssl.create_default_context(cafile=CERT_FILE)


# =============================================================================
# RAW CLIENT
# =============================================================================

class RawResponse:
    """A response read off the wire, split into its parts."""

    def __init__(self, raw: bytes):
        self.raw = raw
        head, _, self.body = raw.partition(b"\r\n\r\n")
        lines = head.decode("iso-8859-1").split("\r\n")

        self.version, status, self.reason = lines[0].split(" ", 2)
        self.status = int(status)
        self.headers: Dict[str, str] = {}
        for line in lines[1:]:
            name, _, value = line.partition(":")
            self.headers[name.strip().lower()] = value.strip()

    def json(self):
        return json.loads(self.body.decode("utf-8"))


def send_raw(
    address: Tuple[str, int],
    data: bytes,
    ssl_context: Optional[ssl.SSLContext] = None,
    timeout: float = 5.0,
) -> bytes:
    """Send `data` and read until the server closes the connection."""
    sock = socket.create_connection(address, timeout=timeout)
    if ssl_context is not None:
        sock = ssl_context.wrap_socket(sock, server_hostname="localhost")

    with sock:
        sock.sendall(data)
        chunks = []
        while True:
            try:
                chunk = sock.recv(65536)
            except (ssl.SSLError, ConnectionResetError):
                break
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def request(
    address: Tuple[str, int],
    method: str,
    target: str,
    body: bytes = b"",
    version: str = "HTTP/1.1",
    headers: Optional[Dict[str, str]] = None,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> RawResponse:
    """Send one well-formed request and parse the response."""
    lines = [f"{method} {target} {version}", "Host: localhost"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    if body:
        lines.append(f"Content-Length: {len(body)}")
    head = ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")

    return RawResponse(send_raw(address, head + body, ssl_context))


# =============================================================================
# SERVER IN A THREAD
# =============================================================================

class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: APIServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """Plain HTTP server with the default seed."""
    test_srv = TestServer(APIServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def tls_server(tls_config: ServerConfig) -> Generator[TestServer, None, None]:
    """HTTPS server with the default seed."""
    test_srv = TestServer(APIServer(tls_config))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture(params=["http", "https"])
def echo_server(
    request: pytest.FixtureRequest,
    config: ServerConfig,
) -> Generator[Tuple[TestServer, Optional[ssl.SSLContext]], None, None]:
    """Server seeded with {"1": {"echo": "HelloWorld"}}, over each transport."""
    client_context = None
    if request.param == "https":
        config.tls = True
        config.certfile = CERT_FILE
        config.keyfile = KEY_FILE
        client_context = ssl.create_default_context(cafile=CERT_FILE)

    test_srv = TestServer(APIServer(config, seed={"1": {"echo": "HelloWorld"}}))
    test_srv.start()

    yield test_srv, client_context

    test_srv.stop()
