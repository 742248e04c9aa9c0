"""Pytest configuration and fixtures."""

import functools
import hashlib
import tempfile
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from cloud_image_download.catalog.models import CloudImage, VersionPointer
from cloud_image_download.core.checksums import Algorithm, Checksum
from cloud_image_download.errors import TransportError
from cloud_image_download.remote.listing import RemoteEntry, join_url


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "network: tests talking to a local HTTP server"
    )


# ============================================================================
# Local mirror
# ============================================================================

class MirrorHandler(SimpleHTTPRequestHandler):
    """Serves a directory like an autoindex mirror. '*.broken' files drop the connection mid-body."""

    def do_GET(self):
        if self.path.endswith(".broken"):
            self.send_response(200)
            self.send_header("Content-Type", "application/octet-stream")
            self.send_header("Content-Length", str(1024 * 1024))
            self.end_headers()
            self.wfile.write(b"x" * 1024)
            self.wfile.flush()
            self.close_connection = True
            return
        super().do_GET()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def web_root():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mirror(web_root):
    """Base URL of an HTTP server serving web_root."""
    handler = functools.partial(MirrorHandler, directory=str(web_root))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def publish(web_root: Path, relative: str, data: bytes) -> Path:
    """Write a file into the mirror tree."""
    path = web_root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_image(name: str, url: str, destination: Path, data: bytes = None, checksum: Checksum = None) -> CloudImage:
    """A CloudImage with a known expected checksum."""
    if checksum is None and data is not None:
        checksum = Checksum.of_bytes(data, Algorithm.SHA256)
    return CloudImage(
        name=name,
        url=url,
        site="test",
        pointer=VersionPointer(site="test", version="1", url=url.rsplit("/", 1)[0]),
        destination=destination,
        checksum=checksum,
    )


# ============================================================================
# Fake site client
# ============================================================================

class FakeClient:
    """
    In-memory stand-in for SiteClient.

    listings maps directory URLs (no trailing slash) to lists of
    (name, is_dir); texts maps document URLs to their body.
    """

    def __init__(self, listings=None, texts=None):
        self.listings = listings or {}
        self.texts = texts or {}
        self.calls = []

    def list_directory(self, url):
        url = url.rstrip("/")
        self.calls.append(("list", url))
        if url not in self.listings:
            raise TransportError(f"HTTP 404 for {url}/")
        return [
            RemoteEntry(name=name, url=join_url(url, name), is_dir=is_dir)
            for name, is_dir in self.listings[url]
        ]

    def get_text(self, url, retry=True):
        self.calls.append(("get", url))
        if url not in self.texts:
            raise TransportError(f"HTTP 404 for {url}")
        return self.texts[url]

    def close(self):
        pass


@pytest.fixture
def fake_client():
    return FakeClient()
