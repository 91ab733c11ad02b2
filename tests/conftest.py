"""
pytest configuration and fixtures.
"""

import socket
import ssl
import threading
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geminiserver import GeminiServer, ServerConfig
from geminiserver.gemini import GeminiRequest, parse_request
from geminiserver.tls import generate_ad_hoc_certificate


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """
    A small capsule:

        capsule/
            index.gmi
            notes.txt
            greet.form
            secret.form
            .hidden
            docs/            (no index → listing)
                guide.gmi
                images/
            blog/
                index.gmi
    """
    root = tmp_path / "capsule"
    root.mkdir()
    (root / "index.gmi").write_bytes(b"# Welcome\r\n=> /docs/ Docs\n")
    (root / "notes.txt").write_text("plain notes\n")
    (root / "greet.form").write_text("?Enter name\nHello {INPUT}")
    (root / "secret.form").write_text("# Login\n??Password\nYou typed {INPUT}\n")
    (root / ".hidden").write_text("dot file\n")

    docs = root / "docs"
    docs.mkdir()
    (docs / "guide.gmi").write_text("# Guide\n")
    (docs / "images").mkdir()

    blog = root / "blog"
    blog.mkdir()
    (blog / "index.gmi").write_text("# Blog\n")

    return root


@pytest.fixture
def make_request():
    """Parse a request line from a str, for handler tests."""
    def _make(url: str) -> GeminiRequest:
        return parse_request(url.encode("utf-8"), ("127.0.0.1", 50000))
    return _make


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture(scope="session")
def certificate(tmp_path_factory) -> tuple[str, str]:
    """Ad-hoc certificate shared by the whole session (RSA keygen is slow)."""
    return generate_ad_hoc_certificate("localhost", tmp_path_factory.mktemp("tls"))


@pytest.fixture
def server_context(certificate) -> ssl.SSLContext:
    certfile, keyfile = certificate
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile, keyfile)
    return context


def gemini_fetch(port: int, request: bytes, timeout: float = 5.0) -> bytes:
    """
    Send raw request bytes over TLS and read until the server closes.

    Certificate verification is off: Gemini clients pin certificates
    (TOFU) rather than validating them against a CA.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname="localhost") as tls:
            tls.sendall(request)
            chunks = []
            while True:
                data = tls.recv(4096)
                if not data:
                    break
                chunks.append(data)
    return b"".join(chunks)


class BackgroundServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: GeminiServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def fetch(self, url: str) -> bytes:
        return self.fetch_raw(url.encode("utf-8") + b"\r\n")

    def fetch_raw(self, request: bytes) -> bytes:
        return gemini_fetch(self.port, request)


@pytest.fixture
def start_server() -> Generator[Callable[..., BackgroundServer], None, None]:
    """
    Factory starting GeminiServer instances in background threads.

    Every server started through it is stopped at teardown.
    """
    started = []

    def _start(config: ServerConfig, **kwargs) -> BackgroundServer:
        background = BackgroundServer(GeminiServer(config, **kwargs))
        background.start()
        started.append(background)
        return background

    yield _start

    for background in started:
        background.stop()


@pytest.fixture
def gemini_server(
    content_root: Path,
    free_port: int,
    server_context: ssl.SSLContext,
    start_server,
) -> BackgroundServer:
    """A running TLS server on the content_root capsule."""
    config = ServerConfig(
        host="127.0.0.1",
        port=free_port,
        content_root=str(content_root),
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
    )
    return start_server(config, tls_context=server_context)
