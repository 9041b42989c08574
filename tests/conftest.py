"""Shared pytest configuration and fixtures."""

import os
import shutil
import socketserver
import tempfile
import threading
from pathlib import Path

import httpx
import pytest

from haproxy_exporter.config.loader import ConfigLoader
from haproxy_exporter.utils.logger import setup_logger


CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"
FIXTURES_DIR = Path(__file__).parent / "fixtures"

SCRAPE_URI = "http://haproxy.test/;csv"

SERVER_WITHOUT_CHECKS = (
    "test,127.0.0.1:8080,0,0,0,0,0,0,0,0,,0,,0,0,0,0,no check,1,1,0,0,,,0,,1,1,1,,0,,2,0,,0,"
    ",,,0,0,0,0,0,0,0,,,,0,0,,,,,,,,,,,"
)

# Second line lost a comma: http://permalink.gmane.org/gmane.comp.web.haproxy/26561
BROKEN_CSV = """foo,FRONTEND,0,0,0,0,,0,0,0,,0,,0,0,0,0,UP,1,1,0,0,0,5007,0,,1,8,1,,0,,2,0,,0,L4OK,,0,,,,,,,0,,,,0,0,,,,,,,,,,,
foo,bug-missing-comma,0,0,0,0,,0,0,0,,0,,0,0,0,0,DRAIN (agent)1,1,0,0,0,5007,0,,1,8,1,,0,,2,0,,0,L4OK,,0,,,,,,,0,,,,0,0,,,,,,,,,,,
foo,foo-instance-0,0,0,0,0,,0,0,0,,0,,0,0,0,0,UP,1,1,0,0,0,5007,0,,1,8,1,,0,,2,0,,0,L4OK,,0,,,,,,,0,,,,0,0,,,,,,,,,,,
foo,BACKEND,0,0,0,0,,0,0,0,,0,,0,0,0,0,UP,1,1,0,0,0,5007,0,,1,8,1,,0,,2,0,,0,L4OK,,0,,,,,,,0,,,,0,0,,,,,,,,,,,
"""

# HAProxy 1.4 era layout: nothing past the type column
OLDER_VERSIONS_CSV = """foo,FRONTEND,0,0,0,0,,0,0,0,,0,,0,0,0,0,UP,1,1,0,0,0,5007,0,,1,8,1,,0,,2,
foo,foo-instance-0,0,0,0,0,,0,0,0,,0,,0,0,0,0,UP,1,1,0,0,0,5007,0,,1,8,1,,0,,2,
foo,BACKEND,0,0,0,0,,0,0,0,,0,,0,0,0,0,UP,1,1,0,0,0,5007,0,,1,8,1,,0,,2,
"""


class Samples(dict):
    """Collected samples keyed by (name, sorted label items)."""

    def value(self, name, **labels):
        return self.get((name, tuple(sorted(labels.items()))))

    def names(self):
        return {name for name, _ in self}


@pytest.fixture(scope="session")
def config():
    """Load the shipped config.yaml."""
    if not CONFIG_PATH.exists():
        pytest.skip(f"Config file not found: {CONFIG_PATH}")

    return ConfigLoader.load_from_file(str(CONFIG_PATH))


@pytest.fixture
def logger():
    """Create logger for tests."""
    return setup_logger("test")


@pytest.fixture(scope="session")
def stats_csv():
    """Realistic stats page with frontend, backend, server and listener rows."""
    return (FIXTURES_DIR / "haproxy.csv").read_text()


@pytest.fixture
def collect_samples():
    """Run one collect() and index the samples."""
    def _collect(collector):
        samples = Samples()
        for family in collector.collect():
            for sample in family.samples:
                samples[(sample.name, tuple(sorted(sample.labels.items())))] = sample.value
        return samples
    return _collect


@pytest.fixture
def mock_haproxy_http():
    """Build an httpx.MockTransport answering every request the same way."""
    def _transport(body="", status_code=200, exc=None, requests=None):
        def handler(request):
            if requests is not None:
                requests.append(request)
            if exc is not None:
                raise exc
            return httpx.Response(status_code, text=body)
        return httpx.MockTransport(handler)
    return _transport


@pytest.fixture
def unix_socket_path():
    """Short socket path; AF_UNIX paths are limited to ~100 bytes."""
    directory = tempfile.mkdtemp(prefix="hxe")
    yield os.path.join(directory, "haproxy.sock")
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def haproxy_unix_server(unix_socket_path):
    """
    Start a stats socket stub.

    Answers ``show stat`` with the given payload, or never answers when
    ``hang`` is set.
    """
    servers = []
    release = threading.Event()

    def _start(payload="", hang=False):
        class Handler(socketserver.StreamRequestHandler):
            def handle(self):
                line = self.rfile.readline()
                if hang:
                    release.wait(10)
                    return
                if line == b"show stat\n":
                    self.wfile.write(payload.encode("utf-8"))

        server = socketserver.ThreadingUnixStreamServer(unix_socket_path, Handler)
        server.daemon_threads = True
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return unix_socket_path

    yield _start

    release.set()
    for server in servers:
        server.shutdown()
        server.server_close()
