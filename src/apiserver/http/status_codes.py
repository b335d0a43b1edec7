"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can put on the wire, with the reason phrases
used in the status line.

    HTTP/1.1 201 Created
             ─── ───────
              │     │
              │     └── Reason phrase (HTTPStatus.phrase)
              └──────── Status code   (int(HTTPStatus))

The API only ever answers with a handful of codes:

    200 OK            list users, get user, and get-user-not-found (!)
    201 Created       user created
    400 Bad Request   request body is not a JSON object
    404 Not Found     no route for this method + target

413, 501 and 505 are never written. They classify the messages the
Session refuses to read (oversized, unsupported transfer-coding, wrong
HTTP version) in HTTPParseError and in the debug log.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare and format as plain integers:

        >>> HTTPStatus.CREATED == 201
        True
        >>> HTTPStatus.CREATED.phrase
        'Created'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    NOT_IMPLEMENTED = 501
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
