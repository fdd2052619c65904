"""
pytest configuration and fixtures.
"""

import socket
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Generator

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from downloadserver import HTTPServer, ServerConfig, create_app
from downloadserver.storage import MemoryStorage


FOOBAR_ID = "foo"
FOOBAR_NAME = "foo.txt"
FOOBAR_CONTENT = b"foobar"
FOOBAR_MTIME = datetime(2024, 6, 10, 10, 55, 36, tzinfo=timezone.utc)


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /download/foo/foo.txt?source=mail HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: */*\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_conditional_request() -> bytes:
    """Sample conditional GET carrying both validators."""
    return (
        b"GET /download/foo HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b'If-None-Match: "abc"\r\n'
        b"If-Modified-Since: Mon, 10 Jun 2024 10:55:36 GMT\r\n"
        b"\r\n"
    )


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
        max_bytes_per_second=None,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def storage() -> MemoryStorage:
    """Storage holding the 'foobar' file: id foo, name foo.txt."""
    storage = MemoryStorage()
    storage.add(FOOBAR_ID, FOOBAR_NAME, FOOBAR_CONTENT, last_modified=FOOBAR_MTIME)
    return storage


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # not a test class

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_listening(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def test_server(config: ServerConfig, storage: MemoryStorage) -> Generator[TestServer, None, None]:
    """A running, unthrottled download server over the foobar storage."""
    server = create_app(config, storage=storage)

    test_srv = TestServer(server)
    test_srv.start()
    yield test_srv
    test_srv.stop()


@pytest.fixture
def server_factory(config: ServerConfig):
    """Start extra servers with their own storage and settings."""
    started = []

    def start(storage, **overrides) -> TestServer:
        test_srv = TestServer(create_app(replace(config, **overrides), storage=storage))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield start

    for test_srv in started:
        test_srv.stop()
