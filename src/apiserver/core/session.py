"""
=============================================================================
SESSION: ONE CONNECTION, ONE REQUEST, ONE RESPONSE
=============================================================================

A Session owns one accepted connection from start to finish and drives it
through a fixed sequence of states. It runs as a single asyncio task, so
while it is waiting on the network every other connection keeps moving on
the same event loop.

=============================================================================
SESSION STATE MACHINE
=============================================================================

    ACCEPTED ──► [HANDSHAKING] ──► READING ──► ROUTING ──► WRITING
        │              │              │                       │
        │              │ failed       │ failed                │ done or failed
        │              ▼              ▼                       ▼
        └──────────────────────────► CLOSING ◄────────────────┘
                                        │
                                        ▼
                                      DONE

    ACCEPTED      Constructed around the accepted socket. Plaintext sessions
                  attach their stream pair here.
    HANDSHAKING   TLS only: the stream pair is attached through a TLS
                  transport, which performs the server-side handshake.
    READING       Read one complete HTTP message (Content-Length or chunked
                  body) and parse it.
    ROUTING       router.route() + build_response(). Never fails.
    WRITING       Write the serialized response and drain.
    CLOSING       Always reached. Half-close (plaintext) or close_notify
                  (TLS), then close. Errors ignored.
    DONE          References to the request, response and streams dropped.

A failure in HANDSHAKING or READING abandons the session. No response is
sent: during the handshake there is no record layer to send it on, and
after a broken read the peer is gone or speaking something that is not
HTTP.

=============================================================================
ATTACHING STREAMS TO THE ACCEPTED SOCKET
=============================================================================

A TLS ClientHello can arrive in the same segment as the TCP handshake. If
the plaintext streams were attached first, the event loop would read those
bytes into a StreamReader and the TLS layer would never see them. So the
Listener hands over the socket untouched and the Session attaches exactly
one transport to it:

    plaintext:  connect_accepted_socket(sock)                 (in ACCEPTED)
    TLS:        connect_accepted_socket(sock, ssl=context)    (HANDSHAKING)

=============================================================================
LIFETIME
=============================================================================

The Listener starts `session.run()` as a task and keeps a reference until
it finishes. The Session holds the socket, the streams and the response
bytes, so the connection stays alive across every await until CLOSING
has finished. There is never more than one I/O operation outstanding per
Session.

=============================================================================
ONE REQUEST PER CONNECTION
=============================================================================

The response's Connection header mirrors what the client asked for, yet
the Session always closes after the first response. Clients that honor
"keep-alive" will simply see the connection closed and reconnect.

=============================================================================
"""

import asyncio
import logging
import socket
import ssl
import time
import uuid
from enum import Enum
from typing import List, Optional

from ..config import ServerConfig
from ..http.request import CRLF, HEADER_TERMINATOR, HTTPParseError, HTTPRequest, RequestParser
from ..http.response import HTTPResponse
from ..http.router import Router, build_response
from ..http.status_codes import HTTPStatus
from .access_log import RequestLog, log_request


logger = logging.getLogger(__name__)


# Upper bound on waiting for the transport to finish closing (TLS close_notify)
CLOSE_TIMEOUT = 5.0

# asyncio always bounds a TLS handshake (60s when given None), so an
# unbounded handshake_timeout is capped at one day instead
UNBOUNDED_SSL_HANDSHAKE_TIMEOUT = 24 * 60 * 60.0


def ssl_handshake_timeout(configured: Optional[float]) -> float:
    """The ssl_handshake_timeout handed to asyncio for a configured timeout."""
    if configured is None:
        return UNBOUNDED_SSL_HANDSHAKE_TIMEOUT
    return configured


class SessionState(Enum):
    """Session lifecycle states, in the order they are entered."""
    ACCEPTED = "accepted"        # Constructed, no I/O yet
    HANDSHAKING = "handshaking"  # TLS handshake in progress
    READING = "reading"          # Waiting for a complete request
    ROUTING = "routing"          # Building the response in-process
    WRITING = "writing"          # Sending the response
    CLOSING = "closing"          # Shutting the transport down
    DONE = "done"                # Resources released


class Session:
    """
    Per-connection state machine.

    Attributes:
        id:             Short random id for log correlation.
        state:          Current SessionState.
        history:        Every state entered, in order.
        client_address: Peer (ip, port).
        status:         Status code written, or None if no response was sent.
        bytes_sent:     Size of the response on the wire (0 if none).

    Usage:
        conn, _ = await loop.sock_accept(listening_socket)
        await Session(conn, router, config, ssl_context).run()
    """

    def __init__(
        self,
        sock: socket.socket,
        router: Router,
        config: ServerConfig,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self._sock: Optional[socket.socket] = sock
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._router = router
        self._config = config
        self._ssl_context = ssl_context
        self._parser = RequestParser(max_request_size=config.max_request_size)
        self._transport_closed = False

        self.id = str(uuid.uuid4())[:8]
        self.created_at = time.monotonic()
        self.history: List[SessionState] = []
        self.state = SessionState.ACCEPTED
        self._enter(SessionState.ACCEPTED)

        try:
            peer = sock.getpeername()
        except OSError:
            # Peer already reset the connection
            peer = None
        self.client_address: tuple[str, int] = tuple(peer[:2]) if peer else ("unknown", 0)

        self.request: Optional[HTTPRequest] = None
        self.response: Optional[HTTPResponse] = None
        self.status: Optional[int] = None
        self.bytes_sent = 0

    @property
    def is_secure(self) -> bool:
        return self._ssl_context is not None

    def _enter(self, state: SessionState) -> None:
        self.state = state
        self.history.append(state)

    # =========================================================================
    # DRIVER
    # =========================================================================

    async def run(self) -> None:
        """
        Drive the session from ACCEPTED to DONE.

        Never raises for network or protocol failures. Cancellation still
        propagates, after the connection has been closed.
        """
        logger.debug(f"[{self.id}] Accepted {self.client_address[0]}:{self.client_address[1]}")
        try:
            if self.is_secure:
                if not await self._handshake():
                    return
            elif not await self._attach_streams():
                return

            self.request = await self._read_request()
            if self.request is None:
                return

            self.response = self._route(self.request)
            await self._write(self.response)

        except Exception as e:
            logger.exception(f"[{self.id}] Unexpected session error: {e}")

        finally:
            await self._close()
            self._release()

    async def _attach_streams(self, ssl_context: Optional[ssl.SSLContext] = None) -> bool:
        """
        Put a transport on the accepted socket and wrap it in streams.

        With an ssl_context the transport is TLS and this completes the
        server-side handshake. False means abandon; the event loop has
        already closed the socket.
        """
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self._config.max_request_size)
        protocol = asyncio.StreamReaderProtocol(reader)

        tls_options = {}
        if ssl_context is not None:
            tls_options = {
                "ssl": ssl_context,
                "ssl_handshake_timeout": ssl_handshake_timeout(self._config.handshake_timeout),
            }

        try:
            transport, _ = await asyncio.wait_for(
                loop.connect_accepted_socket(lambda: protocol, self._sock, **tls_options),
                timeout=self._config.handshake_timeout if ssl_context is not None else None,
            )
        except (OSError, asyncio.TimeoutError) as e:
            # ssl.SSLError and ConnectionError are both OSError
            stage = "TLS handshake" if ssl_context is not None else "Attach"
            logger.debug(f"[{self.id}] {stage} failed: {type(e).__name__}: {e}")
            self._transport_closed = True
            return False

        self._reader = reader
        self._writer = asyncio.StreamWriter(transport, protocol, reader, loop)
        return True

    # =========================================================================
    # HANDSHAKING
    # =========================================================================

    async def _handshake(self) -> bool:
        """TLS handshake on the accepted socket. False means abandon."""
        self._enter(SessionState.HANDSHAKING)
        return await self._attach_streams(self._ssl_context)

    # =========================================================================
    # READING
    # =========================================================================

    async def _read_request(self) -> Optional[HTTPRequest]:
        """Read and parse one request. None means abandon."""
        self._enter(SessionState.READING)
        try:
            return await asyncio.wait_for(self._read_message(), timeout=self._config.read_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"[{self.id}] Read timed out")
        except HTTPParseError as e:
            logger.debug(f"[{self.id}] Rejected request ({e.status_code}): {e}")
        except asyncio.LimitOverrunError as e:
            logger.debug(f"[{self.id}] Rejected request ({HTTPStatus.PAYLOAD_TOO_LARGE}): {e}")
        except asyncio.IncompleteReadError:
            logger.debug(f"[{self.id}] Peer closed before a full request arrived")
        except OSError as e:
            logger.debug(f"[{self.id}] Read failed: {type(e).__name__}: {e}")
        return None

    async def _read_message(self) -> HTTPRequest:
        """
        Read exactly one HTTP message off the stream.

        1. Read through the \\r\\n\\r\\n that ends the headers and parse them.
        2. Ask the parser how the body is framed.
        3. Read Content-Length bytes, or decode chunks until the last one.

        Raises:
            HTTPParseError: Malformed head or framing, or larger than
                            max_request_size.
            asyncio.IncompleteReadError: Peer closed mid-message.
            asyncio.LimitOverrunError: A line longer than max_request_size.
        """
        limit = self._config.max_request_size

        head = await self._reader.readuntil(HEADER_TERMINATOR)
        request = self._parser.parse_head(head, self.client_address)

        length = self._parser.body_length(request.headers)
        if length is None:
            request.body = await self._read_chunked(limit - len(head))
            return request

        if len(head) + length > limit:
            raise HTTPParseError(
                f"Request too large: {len(head) + length} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )
        request.body = await self._reader.readexactly(length)
        return request

    async def _read_chunked(self, budget: int) -> bytes:
        """Decode a chunked body as it arrives, reading at most `budget` raw bytes."""
        body = bytearray()
        consumed = 0

        def charge(n: int) -> None:
            nonlocal consumed
            consumed += n
            if consumed > budget:
                raise HTTPParseError(
                    f"Chunked body larger than {budget} bytes",
                    status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
                )

        while True:
            line = await self._reader.readuntil(CRLF)
            charge(len(line))
            size = RequestParser.chunk_size(line)
            if size == 0:
                break

            charge(size + len(CRLF))
            data = await self._reader.readexactly(size + len(CRLF))
            if not data.endswith(CRLF):
                raise HTTPParseError("Chunk data not followed by CRLF")
            body += data[:-len(CRLF)]

        # Trailer fields are read and dropped
        while True:
            line = await self._reader.readuntil(CRLF)
            charge(len(line))
            if line == CRLF:
                return bytes(body)

    # =========================================================================
    # ROUTING
    # =========================================================================

    def _route(self, request: HTTPRequest) -> HTTPResponse:
        """Synchronous dispatch. Always produces a response."""
        self._enter(SessionState.ROUTING)
        result = self._router.route(request)
        return build_response(result, request)

    # =========================================================================
    # WRITING
    # =========================================================================

    async def _write(self, response: HTTPResponse) -> None:
        self._enter(SessionState.WRITING)
        payload = response.to_bytes(self._config.server_name)
        self.status = int(response.status)

        try:
            self._writer.write(payload)
            await asyncio.wait_for(self._writer.drain(), timeout=self._config.write_timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"[{self.id}] Write failed: {type(e).__name__}: {e}")
            return

        self.bytes_sent = len(payload)
        log_request(RequestLog(
            session_id=self.id,
            method=self.request.method,
            target=self.request.target,
            version=self.request.version,
            client_ip=self.client_address[0],
            user_agent=self.request.user_agent,
            status_code=self.status,
            content_length=len(response.body),
            duration_ms=(time.monotonic() - self.created_at) * 1000,
            timestamp=RequestLog.now(),
        ))

    # =========================================================================
    # CLOSING
    # =========================================================================

    async def _close(self) -> None:
        """
        Best-effort shutdown.

        Plaintext: write_eof() sends FIN (shutdown of the send direction)
        before the socket is closed. TLS transports cannot half-close, so
        close() sends close_notify instead. A socket that never got a
        transport is closed directly.
        """
        self._enter(SessionState.CLOSING)
        if self._transport_closed:
            return

        writer = self._writer
        if writer is None:
            if self._sock is not None:
                self._sock.close()
            return

        try:
            if writer.can_write_eof():
                writer.write_eof()
        except (OSError, RuntimeError):
            pass

        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except (OSError, asyncio.TimeoutError):
            pass

    def _release(self) -> None:
        self._sock = None
        self._reader = None
        self._writer = None
        self.request = None
        self.response = None
        self._enter(SessionState.DONE)
        logger.debug(
            f"[{self.id}] Done in {(time.monotonic() - self.created_at) * 1000:.2f}ms "
            f"(status={self.status})"
        )
