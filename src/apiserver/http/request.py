"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the bytes of ONE HTTP/1.x message into an HTTPRequest.

    ┌─────────────────────────────────────────────────────────────────┐
    │  POST /api/users HTTP/1.1\r\n             ← request line        │
    │  Host: localhost:8080\r\n                 ← headers             │
    │  Content-Type: application/json\r\n                             │
    │  Content-Length: 16\r\n                                         │
    │  \r\n                                     ← end of headers      │
    │  {"name":"Carol"}                         ← body                │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
MESSAGE FRAMING
=============================================================================

body_length() is the single place that decides where a body ends. The
Session asks it while reading from the socket, and parse() asks it when
handed a complete message, so both agree on every request:

    Transfer-Encoding   Content-Length    Body
    ─────────────────   ──────────────    ──────────────────────────────
    absent              absent            none
    absent              N (digits only)   exactly N bytes
    absent              "5, 5", "+5"...   rejected (400)
    chunked             absent            chunks until the 0-size chunk
    chunked             present           rejected (400, ambiguous)
    anything else       -                 rejected (501)

A chunked body looks like this on the wire and is decoded to "Carol":

    5;ext=ignored\r\n     ← hex size, extensions dropped
    Carol\r\n
    0\r\n                 ← last chunk
    \r\n                  ← end of (empty) trailer section

=============================================================================
TARGET
=============================================================================

The request-target is kept EXACTLY as the client sent it. Routing matches
on the raw target, so "/api/users?page=2" is not "/api/users" and
"/api/users/" is a lookup of the empty id.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import re

from .status_codes import HTTPStatus


HEADER_TERMINATOR = b"\r\n\r\n"
CRLF = b"\r\n"


class HTTPParseError(Exception):
    """
    Raised when the request bytes are not a well-formed HTTP/1.x message.

    Carries the status a strict server would answer with. This server
    never answers a message it could not parse (the Session abandons the
    connection), but the code is kept for logging.
    """

    def __init__(self, message: str, status_code: int = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Request method token, upper-case ("GET", "POST", "DELETE", ...).
        target:         Raw request-target, used for routing.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header name (lower-case) → value.
        body:           Decoded body (Content-Length bytes, or the chunks joined).
        client_address: (ip, port) of the peer.
        path_params:    Values captured by the matched route.
    """

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    # Filled in by the router: "/api/users/*id" + "/api/users/7" → {"id": "7"}
    path_params: Dict[str, str] = field(default_factory=dict)

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client asked for a persistent connection.

        HTTP/1.1 keeps alive unless "Connection: close"; HTTP/1.0 closes
        unless "Connection: keep-alive". The answer is only mirrored into
        the response's Connection header: every connection still serves
        exactly one request.
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"


class RequestParser:
    """
    Parses request heads and bodies into HTTPRequest objects.

    Any method token is accepted: routing, not parsing, decides that
    "DELETE /api/users" is answered with 404 Endpoint not found.
    """

    # METHOD SP REQUEST-TARGET SP HTTP-VERSION
    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")
    CONTENT_LENGTH_PATTERN = re.compile(r"^[0-9]+$")
    CHUNK_SIZE_PATTERN = re.compile(rb"^([0-9A-Fa-f]+)[ \t]*(?:;.*)?$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse one complete message.

        Args:
            data: Header section, blank line and body of one message.
                  Bytes after the end of the body are ignored.
            client_address: Peer (ip, port), recorded on the request.

        Raises:
            HTTPParseError: Oversized, truncated or malformed message.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        header_end = data.find(HEADER_TERMINATOR)
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        body_start = header_end + len(HEADER_TERMINATOR)
        request = self.parse_head(data[:body_start], client_address)
        body = data[body_start:]

        length = self.body_length(request.headers)
        if length is None:
            request.body = self.decode_chunked(body)
        elif len(body) < length:
            raise HTTPParseError(
                f"Incomplete body: expected {length} bytes, got {len(body)}"
            )
        else:
            request.body = body[:length]

        return request

    def parse_head(self, head: bytes, client_address: tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse the request line and headers. The returned request has no body.

        Args:
            head: Everything up to and including the blank line.
        """
        lines = head.decode("iso-8859-1").split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def body_length(self, headers: Dict[str, str]) -> Optional[int]:
        """
        How the body is framed.

        Returns:
            The Content-Length (0 when there is no body), or None for a
            chunked body.

        Raises:
            HTTPParseError: Conflicting, repeated or invalid framing headers.
        """
        transfer_encoding = headers.get("transfer-encoding")
        content_length = headers.get("content-length")

        if transfer_encoding is not None:
            codings = [c.strip().lower() for c in transfer_encoding.split(",")]
            if codings != ["chunked"]:
                raise HTTPParseError(
                    f"Unsupported Transfer-Encoding: {transfer_encoding!r}",
                    status_code=HTTPStatus.NOT_IMPLEMENTED,
                )
            if content_length is not None:
                raise HTTPParseError("Both Transfer-Encoding and Content-Length present")
            return None

        if content_length is None:
            return 0

        # Repeated headers were folded into "5, 5" by _parse_headers
        if not self.CONTENT_LENGTH_PATTERN.match(content_length):
            raise HTTPParseError(f"Invalid Content-Length: {content_length!r}")
        return int(content_length)

    @classmethod
    def chunk_size(cls, line: bytes) -> int:
        """
        Size from a chunk-size line ("1a;name=value\\r\\n" → 26).

        Raises:
            HTTPParseError: Not a hex size.
        """
        match = cls.CHUNK_SIZE_PATTERN.match(line.rstrip(b"\r\n"))
        if not match:
            raise HTTPParseError(f"Invalid chunk size line: {line[:32]!r}")
        return int(match.group(1), 16)

    def decode_chunked(self, data: bytes) -> bytes:
        """
        Decode a complete chunked body.

        Trailer fields after the last chunk are read past and discarded.

        Raises:
            HTTPParseError: Malformed or truncated chunk stream.
        """
        body = bytearray()
        pos = 0

        while True:
            line_end = data.find(CRLF, pos)
            if line_end == -1:
                raise HTTPParseError("Incomplete chunked body: missing chunk size")
            size = self.chunk_size(data[pos:line_end])
            pos = line_end + len(CRLF)

            if size == 0:
                break

            chunk_end = pos + size
            if data[chunk_end:chunk_end + len(CRLF)] != CRLF:
                raise HTTPParseError("Incomplete chunked body: chunk data truncated")
            body += data[pos:chunk_end]
            pos = chunk_end + len(CRLF)

        # Trailer section: zero or more field lines, then an empty line
        while True:
            line_end = data.find(CRLF, pos)
            if line_end == -1:
                raise HTTPParseError("Incomplete chunked body: missing final CRLF")
            if line_end == pos:
                return bytes(body)
            pos = line_end + len(CRLF)

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()
        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=HTTPStatus.HTTP_VERSION_NOT_SUPPORTED,
            )

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: value" lines into a dict with lower-case names.

        Repeated headers are folded into one comma-separated value.
        Lines without a colon are skipped.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse one message with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
