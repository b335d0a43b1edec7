"""
=============================================================================
HTTP RESPONSE
=============================================================================

Every answer this server gives is a JSON document:

    HTTP/1.1 201 Created\r\n
    Server: apiserver/1.0\r\n
    Content-Type: application/json\r\n
    Connection: keep-alive\r\n                ← mirrored from the request
    Content-Length: 52\r\n                    ← added by to_bytes()
    Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n   ← added by to_bytes()
    \r\n
    {"message":"User created","user":{"name":"Carol","id":2}}

Bodies are serialized compactly (no spaces after separators) and key order
is preserved, so a created user comes back with its fields in the order
the client sent them followed by the injected "id".

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Dict
import json

from .status_codes import HTTPStatus


JSON_CONTENT_TYPE = "application/json"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Attributes:
        status:  Status code.
        headers: Header name → value, in the order they will be written.
        body:    Body bytes.
        version: Mirrors the request's HTTP version.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def json(self) -> Any:
        """Decode the body back into Python data (used by tests and logging)."""
        return json.loads(self.body.decode("utf-8"))

    def to_bytes(self, server_name: str = "apiserver/1.0") -> bytes:
        """
        Serialize to wire format.

        Content-Length, Date and Server are filled in when the handler did
        not set them. The headers dict itself is left untouched.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Server", server_name)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        head = "\r\n".join(lines).encode("iso-8859-1") + b"\r\n"
        return head + self.body


def format_http_date(dt: datetime) -> str:
    """RFC 7231 IMF-fixdate, e.g. "Mon, 19 Oct 2026 12:00:00 GMT"."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def encode_json(data: Any) -> bytes:
    """
    Compact UTF-8 JSON.

    Strict: NaN and Infinity have no JSON spelling, so they raise
    ValueError instead of being written as bare tokens.
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode("utf-8")


def json_response(
    status: HTTPStatus,
    data: Any,
    keep_alive: bool = False,
    version: str = "HTTP/1.1",
) -> HTTPResponse:
    """
    Build a JSON response.

    Args:
        status: Status code.
        data: JSON-serializable body.
        keep_alive: The request's keep-alive preference, reflected in the
                    Connection header.
        version: HTTP version of the request being answered.
    """
    return HTTPResponse(
        status=status,
        headers={
            "Content-Type": JSON_CONTENT_TYPE,
            "Connection": "keep-alive" if keep_alive else "close",
        },
        body=encode_json(data),
        version=version,
    )
