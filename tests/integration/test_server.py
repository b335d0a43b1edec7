"""
End-to-end tests against a running APIServer.
"""

import socket
import ssl
import threading

import pytest

from conftest import RawResponse, TestServer, request, send_raw


class TestUserAPI:
    """Tests for the REST API over plain HTTP."""

    def test_list_users(self, test_server: TestServer):
        response = request(test_server.address, "GET", "/api/users")

        assert response.status == 200
        assert response.reason == "OK"
        assert response.headers["content-type"] == "application/json"
        assert response.headers["content-length"] == str(len(response.body))
        assert response.json() == {
            "users": [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
        }

    def test_create_then_fetch(self, test_server: TestServer):
        """Test that a created user is visible to later connections."""
        created = request(test_server.address, "POST", "/api/users", b'{"name":"Carol"}')

        assert created.status == 201
        assert created.body == b'{"message":"User created","user":{"name":"Carol","id":3}}'

        fetched = request(test_server.address, "GET", "/api/users/3")
        assert fetched.status == 200
        assert fetched.json() == {"name": "Carol", "id": 3}

        listed = request(test_server.address, "GET", "/api/users")
        assert [u["name"] for u in listed.json()["users"]] == ["Alice", "Bob", "Carol"]

    def test_missing_user_is_200(self, test_server: TestServer):
        response = request(test_server.address, "GET", "/api/users/99")

        assert response.status == 200
        assert response.json() == {"error": "User not found"}

    def test_unsupported_method_is_404(self, test_server: TestServer):
        response = request(test_server.address, "DELETE", "/api/users/1")

        assert response.status == 404
        assert response.json() == {"error": "Endpoint not found"}

    def test_malformed_post_changes_nothing(self, test_server: TestServer):
        response = request(test_server.address, "POST", "/api/users", b"{not json")

        assert response.status == 400
        assert "error" in response.json()

        listed = request(test_server.address, "GET", "/api/users")
        assert len(listed.json()["users"]) == 2

    def test_connection_closed_after_one_response(self, test_server: TestServer):
        """Test that the server closes even when keep-alive was asked for."""
        raw = send_raw(
            test_server.address,
            b"GET /api/users/1 HTTP/1.1\r\nConnection: keep-alive\r\n\r\n"
            b"GET /api/users/2 HTTP/1.1\r\n\r\n",
        )

        assert raw.count(b"HTTP/1.1 200 OK") == 1
        assert b"Connection: keep-alive" in raw
        assert b"Alice" in raw
        assert b"Bob" not in raw

    def test_http_10_version_mirrored(self, test_server: TestServer):
        response = request(test_server.address, "GET", "/api/users/1", version="HTTP/1.0")

        assert response.version == "HTTP/1.0"
        assert response.headers["connection"] == "close"

    def test_survives_garbage(self, test_server: TestServer):
        """Test that unparseable input is dropped and the server keeps serving."""
        assert send_raw(test_server.address, b"\x16\x03\x01garbage\r\n\r\n") == b""

        response = request(test_server.address, "GET", "/api/users/1")
        assert response.status == 200

    def test_idle_client_does_not_block_others(self, test_server: TestServer):
        """Test that a connection that never sends does not stall the server."""
        with socket.create_connection(test_server.address):
            response = request(test_server.address, "GET", "/api/users/2")
            assert response.json() == {"id": 2, "name": "Bob"}

    def test_concurrent_creates(self, test_server: TestServer):
        """Test parallel POSTs get distinct identifiers."""
        ids = []
        lock = threading.Lock()

        def create(n: int):
            body = f'{{"n":{n}}}'.encode()
            response = request(test_server.address, "POST", "/api/users", body)
            with lock:
                ids.append(response.json()["user"]["id"])

        threads = [threading.Thread(target=create, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(ids) == list(range(3, 23))

    def test_chunked_create(self, test_server: TestServer):
        """Test a POST whose body is sent with Transfer-Encoding: chunked."""
        raw = send_raw(
            test_server.address,
            b"POST /api/users HTTP/1.1\r\n"
            b"Host: localhost\r\n"
            b"Content-Type: application/json\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"8\r\n{\"name\":\r\n"
            b"8\r\n\"Carol\"}\r\n"
            b"0\r\n"
            b"\r\n",
        )
        response = RawResponse(raw)

        assert response.status == 201
        assert response.json()["user"] == {"name": "Carol", "id": 3}
        assert request(test_server.address, "GET", "/api/users/3").json() == {
            "name": "Carol", "id": 3,
        }

    @pytest.mark.parametrize("body", [b'{"n":NaN}', b'{"n":-Infinity}', b'{"n":1e400}'])
    def test_non_finite_number_refused(self, test_server: TestServer, body: bytes):
        """Test a body with no strict-JSON spelling is 400 and never stored."""
        response = request(test_server.address, "POST", "/api/users", body)

        assert response.status == 400
        listing = request(test_server.address, "GET", "/api/users")
        assert listing.json() == {"users": [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]}

    def test_repeated_content_length_unanswered(self, test_server: TestServer):
        raw = send_raw(
            test_server.address,
            b"POST /api/users HTTP/1.1\r\nContent-Length: 2\r\nContent-Length: 2\r\n\r\n{}",
        )

        assert raw == b""
        assert len(request(test_server.address, "GET", "/api/users").json()["users"]) == 2


class TestTLS:
    """Tests for the REST API over HTTPS."""

    def test_list_users(self, tls_server: TestServer, client_ssl_context: ssl.SSLContext):
        response = request(tls_server.address, "GET", "/api/users", ssl_context=client_ssl_context)

        assert response.status == 200
        assert len(response.json()["users"]) == 2

    def test_create_over_tls(self, tls_server: TestServer, client_ssl_context: ssl.SSLContext):
        response = request(
            tls_server.address, "POST", "/api/users", b'{"name":"Carol"}',
            ssl_context=client_ssl_context,
        )

        assert response.status == 201
        assert response.json()["user"]["id"] == 3

    def test_plaintext_client_gets_no_http(
        self, tls_server: TestServer, client_ssl_context: ssl.SSLContext
    ):
        """Test that a failed handshake is dropped and the server keeps serving."""
        raw = send_raw(tls_server.address, b"GET /api/users HTTP/1.1\r\n\r\n")
        assert b"HTTP/" not in raw

        response = request(tls_server.address, "GET", "/api/users/1", ssl_context=client_ssl_context)
        assert response.json() == {"id": 1, "name": "Alice"}

    def test_old_protocol_refused(self, tls_server: TestServer):
        """Test that TLS 1.1 clients cannot connect."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        try:
            context.minimum_version = ssl.TLSVersion.TLSv1_1
            context.maximum_version = ssl.TLSVersion.TLSv1_1
        except (ValueError, ssl.SSLError):
            pytest.skip("local OpenSSL cannot offer TLS 1.1")

        with pytest.raises((ssl.SSLError, ConnectionError)):
            with socket.create_connection(tls_server.address, timeout=5) as sock:
                with context.wrap_socket(sock, server_hostname="localhost"):
                    pass


class TestEchoSeedScenario:
    """The echo-seed walkthrough, over plain HTTP and HTTPS."""

    def test_create_and_fetch(self, echo_server):
        server, client_ssl = echo_server

        seeded = request(server.address, "GET", "/api/users/1", ssl_context=client_ssl)
        assert seeded.body == b'{"echo":"HelloWorld"}'

        created = request(
            server.address, "POST", "/api/users", b'{"name":"Carol"}', ssl_context=client_ssl
        )
        assert created.status == 201
        assert created.body == b'{"message":"User created","user":{"name":"Carol","id":2}}'

        fetched = request(server.address, "GET", "/api/users/2", ssl_context=client_ssl)
        assert fetched.status == 200
        assert fetched.body == b'{"name":"Carol","id":2}'

    def test_repeated_malformed_post(self, echo_server):
        """Test that bad POSTs never change the registry and always look alike."""
        server, client_ssl = echo_server

        shapes = set()
        for _ in range(5):
            response = request(
                server.address, "POST", "/api/users", b"not json", ssl_context=client_ssl
            )
            assert response.status == 400
            body = response.json()
            assert isinstance(body["error"], str) and body["error"]
            shapes.add(tuple(sorted(body)))

        assert shapes == {("error",)}
        assert len(server.server.registry) == 1

    def test_delete_is_404(self, echo_server):
        server, client_ssl = echo_server

        response = request(server.address, "DELETE", "/api/users", ssl_context=client_ssl)
        assert response.status == 404
        assert response.body == b'{"error":"Endpoint not found"}'
