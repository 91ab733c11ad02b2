"""
Integration tests for the Gemini server.

These start a real server on a free port and talk to it over TLS (or
plain TCP, for the proxy mode) the way a Gemini client would.
"""

import socket
import ssl
import threading
import time
from pathlib import Path

import pytest

from geminiserver import GeminiServer, ServerConfig
from geminiserver.gemini import FramingError, NotFound, Status, ok, prompt
from geminiserver.middleware import AccessLogMiddleware, function_middleware
from geminiserver.server import REJECT_TIMEOUT


def fetch_until_closed(server, request: bytes) -> bytes:
    """
    Like fetch_raw(), but a reset counts as end of stream.

    When the server drops a connection with unread request bytes the
    kernel may answer with RST instead of FIN.
    """
    try:
        return server.fetch_raw(request)
    except (ConnectionResetError, ssl.SSLError):
        return b""


def plain_fetch(port: int, request: bytes) -> bytes:
    with socket.create_connection(("127.0.0.1", port), timeout=5.0) as sock:
        sock.sendall(request)
        chunks = []
        while True:
            data = sock.recv(4096)
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks)


class TestServing:
    """Tests for successful requests over TLS."""

    def test_index(self, gemini_server):
        response = gemini_server.fetch("gemini://localhost/")

        assert response == b"20 text/gemini\r\n# Welcome\r\n=> /docs/ Docs\n\r\n"

    def test_plain_text_file(self, gemini_server):
        response = gemini_server.fetch("gemini://localhost/notes.txt")

        assert response == b"20 text/plain\r\nplain notes\n\r\n"

    def test_listing(self, gemini_server):
        response = gemini_server.fetch("gemini://localhost/docs/")

        assert response.startswith(b"20 text/gemini\r\n# docs\n")
        assert b"=> /docs/guide.gmi /docs/guide.gmi\n" in response

    def test_form_round_trip(self, gemini_server):
        """Test both phases of an input form."""
        first = gemini_server.fetch("gemini://localhost/greet.form")
        second = gemini_server.fetch("gemini://localhost/greet.form?Ada")

        assert first == b"10 Enter name\r\n"
        assert second == b"20 text/gemini\r\nHello Ada\r\n"

    def test_sensitive_form(self, gemini_server):
        assert gemini_server.fetch("gemini://localhost/secret.form") == b"11 Password\r\n"

    def test_host_and_port_not_checked(self, gemini_server):
        """Test that any host in the URL is served from the same root."""
        response = gemini_server.fetch("gemini://example.org:1965/notes.txt")

        assert response.startswith(b"20 text/plain\r\n")

    def test_sequential_requests(self, gemini_server):
        """Test that one connection per request works repeatedly."""
        for _ in range(5):
            assert gemini_server.fetch("gemini://localhost/notes.txt").startswith(b"20 ")

    def test_concurrent_requests(self, gemini_server):
        results = []
        lock = threading.Lock()

        def client():
            response = gemini_server.fetch("gemini://localhost/")
            with lock:
                results.append(response)

        threads = [threading.Thread(target=client) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)

        assert len(results) == 10
        assert all(r.startswith(b"20 text/gemini\r\n") for r in results)

    def test_tls_version(self, gemini_server):
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        with socket.create_connection(("127.0.0.1", gemini_server.port), timeout=5.0) as sock:
            with context.wrap_socket(sock, server_hostname="localhost") as tls:
                assert tls.version() in ("TLSv1.2", "TLSv1.3")
                tls.sendall(b"gemini://localhost/\r\n")
                assert tls.recv(4096).startswith(b"20 ")


class TestErrors:
    """Tests for error responses over TLS."""

    def test_not_found(self, gemini_server):
        assert gemini_server.fetch("gemini://localhost/missing.gmi") == b"51 Not found\r\n"

    def test_traversal(self, gemini_server):
        assert gemini_server.fetch("gemini://localhost/../etc/passwd") == b"51 Not found\r\n"

    def test_encoded_traversal(self, gemini_server):
        assert gemini_server.fetch("gemini://localhost/%2e%2e/%2e%2e/etc/passwd") == \
            b"51 Not found\r\n"

    def test_wrong_scheme(self, gemini_server):
        assert gemini_server.fetch("https://localhost/") == b"59 Unsupported scheme\r\n"

    def test_relative_url(self, gemini_server):
        assert gemini_server.fetch("/index.gmi") == b"59 Bad request\r\n"

    def test_not_utf8(self, gemini_server):
        response = gemini_server.fetch_raw(b"gemini://localhost/\xff\r\n")

        assert response == b"59 Bad request\r\n"

    def test_maximum_length_served(self, gemini_server):
        """Test that a 1024 byte request gets an answer."""
        prefix = b"gemini://localhost/"
        line = prefix + (b"a/" * 600)[: 1024 - len(prefix)]
        assert len(line) == 1024

        response = gemini_server.fetch_raw(line + b"\r\n")

        assert response == b"51 Not found\r\n"

    def test_overlong_request_closed_silently(self, gemini_server):
        """Test that a 1025 byte request line gets no response at all."""
        prefix = b"gemini://localhost/"
        line = prefix + b"a" * (1025 - len(prefix))

        assert fetch_until_closed(gemini_server, line + b"\r\n") == b""

    def test_endless_line_closed_silently(self, gemini_server):
        response = fetch_until_closed(gemini_server, b"gemini://localhost/" + b"a" * 5000)

        assert response == b""

    def test_server_survives_bad_clients(self, gemini_server):
        """Test that broken clients do not affect the next request."""
        # Plain TCP to a TLS port
        with socket.create_connection(("127.0.0.1", gemini_server.port), timeout=5.0) as sock:
            sock.sendall(b"gemini://localhost/\r\n")
            try:
                sock.recv(4096)
            except ConnectionResetError:
                pass

        # Connect and hang up straight away
        socket.create_connection(("127.0.0.1", gemini_server.port), timeout=5.0).close()

        assert gemini_server.fetch("gemini://localhost/notes.txt").startswith(b"20 ")


class TestPlaintextMode:
    """Tests for a server without TLS (behind a terminating proxy)."""

    def test_request(self, content_root: Path, free_port: int, start_server):
        config = ServerConfig(
            host="127.0.0.1",
            port=free_port,
            content_root=str(content_root),
            min_workers=1,
            max_workers=2,
            log_level="WARNING",
        )
        start_server(config)

        response = plain_fetch(free_port, b"gemini://localhost/notes.txt\r\n")

        assert response == b"20 text/plain\r\nplain notes\n\r\n"


class TestOverload:
    """Tests for the saturated thread pool."""

    def test_rejected_with_41(self, content_root: Path, free_port: int, start_server):
        """Test that a connection beyond the queue is turned away at once."""
        entered = threading.Event()
        release = threading.Event()

        def slow(request):
            entered.set()
            release.wait(5.0)
            return ok("done\n")

        config = ServerConfig(
            host="127.0.0.1",
            port=free_port,
            content_root=str(content_root),
            min_workers=1,
            max_workers=1,
            queue_size=1,
            timeout=5.0,
            log_level="WARNING",
        )
        start_server(config, handler=slow)

        busy = socket.create_connection(("127.0.0.1", free_port), timeout=5.0)
        queued = None
        try:
            busy.sendall(b"gemini://localhost/\r\n")
            assert entered.wait(5.0)

            # The only worker is inside slow(); this one fills the queue.
            # Accepts happen in connect order, so it is queued before the next.
            queued = socket.create_connection(("127.0.0.1", free_port), timeout=5.0)

            response = plain_fetch(free_port, b"gemini://localhost/\r\n")

            assert response == b"41 Server unavailable\r\n"
        finally:
            release.set()
            busy.close()
            if queued is not None:
                queued.close()

    def test_stalled_rejection_does_not_block_accepts(
        self,
        content_root: Path,
        free_port: int,
        server_context: ssl.SSLContext,
        start_server,
    ):
        """Test that a client stalling its handshake does not delay the next 41."""
        entered = threading.Event()
        release = threading.Event()

        def slow(request):
            entered.set()
            release.wait(5.0)
            return ok("done\n")

        config = ServerConfig(
            host="127.0.0.1",
            port=free_port,
            content_root=str(content_root),
            min_workers=1,
            max_workers=1,
            queue_size=1,
            timeout=5.0,
            log_level="WARNING",
        )
        server = start_server(config, tls_context=server_context, handler=slow)

        busy = threading.Thread(
            target=fetch_until_closed,
            args=(server, b"gemini://localhost/\r\n"),
            daemon=True,
        )
        busy.start()
        queued = stalled = None
        try:
            assert entered.wait(5.0)
            queued = socket.create_connection(("127.0.0.1", free_port), timeout=5.0)
            # Never sends a ClientHello, so its rejection waits out REJECT_TIMEOUT
            stalled = socket.create_connection(("127.0.0.1", free_port), timeout=5.0)

            started = time.monotonic()
            response = server.fetch("gemini://localhost/")
            elapsed = time.monotonic() - started

            assert response == b"41 Server unavailable\r\n"
            assert elapsed < REJECT_TIMEOUT / 2
        finally:
            release.set()
            for sock in (queued, stalled):
                if sock is not None:
                    sock.close()
            busy.join(5.0)


class TestRespond:
    """Tests for GeminiServer.respond(), the pipeline without sockets."""

    @pytest.fixture
    def config(self, content_root: Path) -> ServerConfig:
        return ServerConfig(content_root=str(content_root), log_level="WARNING")

    def test_static(self, config):
        response = GeminiServer(config).respond(b"gemini://localhost/notes.txt")

        assert response.status == Status.SUCCESS
        assert response.body == b"plain notes\n"

    def test_parse_error(self, config):
        server = GeminiServer(config)

        assert server.respond(b"ftp://localhost/").to_bytes() == b"59 Unsupported scheme\r\n"
        assert server.respond(b"").to_bytes() == b"59 Bad request\r\n"

    def test_custom_handler(self, config):
        server = GeminiServer(config, handler=lambda request: prompt(f"Path {request.path}?"))

        assert server.respond(b"gemini://localhost/x").to_bytes() == b"10 Path /x?\r\n"

    def test_handler_crash_is_temporary_failure(self, config, caplog):
        def crash(request):
            raise RuntimeError("disk on fire")

        response = GeminiServer(config, handler=crash).respond(b"gemini://localhost/")

        assert response.to_bytes() == b"40 Temporary failure\r\n"
        assert "disk on fire" in caplog.text

    def test_handler_raising_gemini_error(self, config):
        def missing(request):
            raise NotFound("gone")

        response = GeminiServer(config, handler=missing).respond(b"gemini://localhost/")

        assert response.to_bytes() == b"51 Not found\r\n"

    def test_handler_raising_framing_error(self, config):
        """Test that an error without a response still answers."""
        def odd(request):
            raise FramingError("misplaced")

        response = GeminiServer(config, handler=odd).respond(b"gemini://localhost/")

        assert response.status == Status.TEMPORARY_FAILURE

    def test_middleware(self, config):
        @function_middleware
        def block_docs(request, next):
            if request.path.startswith("/docs"):
                return prompt("Password for docs", sensitive=True)
            return next(request)

        server = GeminiServer(config).use(AccessLogMiddleware()).use(block_docs)

        assert server.respond(b"gemini://localhost/docs/").status == Status.SENSITIVE_INPUT
        assert server.respond(b"gemini://localhost/").status == Status.SUCCESS

    def test_missing_content_root(self, tmp_path):
        with pytest.raises(ValueError):
            GeminiServer(ServerConfig(content_root=str(tmp_path / "nope")))
