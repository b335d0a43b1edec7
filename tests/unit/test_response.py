"""
Unit tests for HTTP response serialization.
"""

from datetime import datetime, timezone

import pytest

from apiserver.http.response import (
    HTTPResponse,
    encode_json,
    format_http_date,
    json_response,
)
from apiserver.http.status_codes import HTTPStatus


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_values(self):
        assert HTTPStatus.OK == 200
        assert HTTPStatus.CREATED == 201
        assert HTTPStatus.NOT_FOUND == 404

    def test_status_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.CREATED.phrase == "Created"
        assert HTTPStatus.BAD_REQUEST.phrase == "Bad Request"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"

    def test_refusal_codes(self):
        assert HTTPStatus.PAYLOAD_TOO_LARGE.phrase == "Payload Too Large"
        assert HTTPStatus.NOT_IMPLEMENTED.phrase == "Not Implemented"
        assert HTTPStatus.HTTP_VERSION_NOT_SUPPORTED == 505


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_to_bytes(self):
        """Test wire format: status line, headers, blank line, body."""
        response = HTTPResponse(status=HTTPStatus.CREATED, body=b"{}")
        raw = response.to_bytes()

        head, _, body = raw.partition(b"\r\n\r\n")
        lines = head.decode().split("\r\n")

        assert lines[0] == "HTTP/1.1 201 Created"
        assert "Content-Length: 2" in lines
        assert "Server: apiserver/1.0" in lines
        assert any(line.startswith("Date: ") and line.endswith(" GMT") for line in lines)
        assert body == b"{}"

    def test_version_mirrored(self):
        response = HTTPResponse(status=HTTPStatus.OK, version="HTTP/1.0")
        assert response.to_bytes().startswith(b"HTTP/1.0 200 OK\r\n")

    def test_explicit_headers_win(self):
        """Test that handler-set headers are not overwritten."""
        response = HTTPResponse(body=b"abc").set_header("Server", "custom")
        raw = response.to_bytes(server_name="ignored")

        assert b"Server: custom\r\n" in raw
        assert b"ignored" not in raw
        assert "Content-Length" not in response.headers

    def test_format_http_date(self):
        dt = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Mon, 19 Oct 2026 12:00:00 GMT"


class TestJSONResponse:
    """Tests for json_response()."""

    def test_compact_json(self):
        assert encode_json({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'

    def test_unicode_not_escaped(self):
        assert encode_json({"name": "Zoë"}) == '{"name":"Zoë"}'.encode("utf-8")

    def test_json_response_headers(self):
        response = json_response(HTTPStatus.OK, {"users": []})

        assert response.headers["Content-Type"] == "application/json"
        assert response.headers["Connection"] == "close"
        assert response.body == b'{"users":[]}'
        assert response.json() == {"users": []}

    def test_keep_alive_header(self):
        response = json_response(HTTPStatus.OK, {}, keep_alive=True)
        assert response.headers["Connection"] == "keep-alive"

    def test_content_length_counts_bytes(self):
        """Test Content-Length is the UTF-8 byte count, not characters."""
        response = json_response(HTTPStatus.OK, {"n": "é"})
        assert f"Content-Length: {len(response.body)}".encode() in response.to_bytes()
        assert len(response.body) == len('{"n":"é"}') + 1

    def test_non_finite_numbers_rejected(self):
        """Test NaN and Infinity are never written as bare tokens."""
        for value in (float("nan"), float("inf"), float("-inf")):
            with pytest.raises(ValueError):
                encode_json({"n": value})
