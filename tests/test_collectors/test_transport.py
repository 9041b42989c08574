"""Tests for the fetch strategies."""

import socket
import time
from unittest.mock import patch

import httpx
import pytest

from haproxy_exporter.collectors.errors import (
    ConfigurationError,
    FetchError,
    StatsReadError,
    UnsupportedSchemeError,
)
from haproxy_exporter.collectors.transport import (
    FileTransport,
    HTTPTransport,
    Transport,
    UnixSocketTransport,
)

from conftest import SCRAPE_URI, SERVER_WITHOUT_CHECKS

requires_unix = pytest.mark.skipif(not hasattr(socket, "AF_UNIX"), reason="needs unix sockets")


class BrokenStream(httpx.SyncByteStream):
    """Response body that fails after the first chunk."""

    def __init__(self, first_chunk, exc):
        self.first_chunk = first_chunk
        self.exc = exc

    def __iter__(self):
        yield self.first_chunk
        raise self.exc


class TrickleStream(httpx.SyncByteStream):
    """Response body that sends single bytes and never finishes a line."""

    def __init__(self, interval, count):
        self.interval = interval
        self.count = count

    def __iter__(self):
        for _ in range(self.count):
            time.sleep(self.interval)
            yield b"x"


class TestFromUri:
    """Test suite for scheme selection."""

    @pytest.mark.parametrize("uri,expected", [
        ("http://localhost/;csv", HTTPTransport),
        ("https://lb.example.com:8404/stats;csv", HTTPTransport),
        ("HTTP://localhost/;csv", HTTPTransport),
        ("file:///var/lib/haproxy/stats.csv", FileTransport),
        ("unix:/run/haproxy/admin.sock", UnixSocketTransport),
        ("unix:///run/haproxy/admin.sock", UnixSocketTransport),
    ])
    def test_supported_schemes(self, uri, expected):
        assert isinstance(Transport.from_uri(uri), expected)

    def test_unix_path(self):
        assert Transport.from_uri("unix:/run/haproxy/admin.sock").path == "/run/haproxy/admin.sock"
        assert Transport.from_uri("unix:///run/haproxy/admin.sock").path == "/run/haproxy/admin.sock"

    def test_unsupported_scheme(self):
        """Test the rejected scheme is named in the error."""
        with pytest.raises(UnsupportedSchemeError) as exc_info:
            Transport.from_uri("gopher://gopher.quux.org")

        assert str(exc_info.value) == 'unsupported scheme: "gopher"'
        assert exc_info.value.scheme == "gopher"

    def test_missing_scheme(self):
        with pytest.raises(UnsupportedSchemeError):
            Transport.from_uri("/run/haproxy/admin.sock")

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError):
            Transport.from_uri("http://localhost/;csv", timeout=0)

    def test_http_options(self):
        transport = Transport.from_uri("https://lb/;csv", ssl_verify=False, timeout=2.5)
        assert transport.ssl_verify is False
        assert transport.timeout == 2.5


class TestHTTPTransport:
    """Test suite for HTTP(S) fetching."""

    def test_fetch_lines(self, mock_haproxy_http):
        requests = []
        transport = Transport.from_uri(
            SCRAPE_URI,
            http_transport=mock_haproxy_http("# header\n" + SERVER_WITHOUT_CHECKS + "\n", requests=requests)
        )

        with transport.fetch() as lines:
            received = list(lines)

        assert received == ["# header", SERVER_WITHOUT_CHECKS]
        assert requests[0].method == "GET"
        assert str(requests[0].url) == SCRAPE_URI

    @pytest.mark.parametrize("status_code", [404, 500, 301])
    def test_non_success_status(self, mock_haproxy_http, status_code):
        """Any non-2xx status is a fetch failure, 404 included."""
        transport = Transport.from_uri(SCRAPE_URI, http_transport=mock_haproxy_http("", status_code))

        with pytest.raises(FetchError) as exc_info:
            with transport.fetch():
                pass

        assert str(exc_info.value) == f"HTTP status {status_code}"

    @pytest.mark.parametrize("exc", [
        httpx.ConnectError("Connection refused"),
        httpx.ConnectTimeout("timed out"),
        httpx.ReadTimeout("timed out"),
    ])
    def test_request_errors(self, mock_haproxy_http, exc):
        transport = Transport.from_uri(SCRAPE_URI, http_transport=mock_haproxy_http(exc=exc))

        with pytest.raises(FetchError):
            with transport.fetch():
                pass

    def test_broken_body(self):
        """A body that breaks mid-read is a stream error."""
        def handler(request):
            stream = BrokenStream(SERVER_WITHOUT_CHECKS.encode() + b"\n", httpx.RemoteProtocolError("peer closed"))
            return httpx.Response(200, stream=stream)

        transport = Transport.from_uri(SCRAPE_URI, http_transport=httpx.MockTransport(handler))
        received = []

        with pytest.raises(StatsReadError):
            with transport.fetch() as lines:
                for line in lines:
                    received.append(line)

        assert received == [SERVER_WITHOUT_CHECKS]

    def test_body_timeout_is_fetch_error(self):
        def handler(request):
            return httpx.Response(200, stream=BrokenStream(b"partial", httpx.ReadTimeout("timed out")))

        transport = Transport.from_uri(SCRAPE_URI, http_transport=httpx.MockTransport(handler))

        with pytest.raises(FetchError):
            with transport.fetch() as lines:
                list(lines)

    def test_body_trickle_without_newline(self):
        """The deadline is checked per chunk, not per completed line."""
        def handler(request):
            return httpx.Response(200, stream=TrickleStream(interval=0.1, count=30))

        transport = Transport.from_uri(SCRAPE_URI, timeout=0.5, http_transport=httpx.MockTransport(handler))
        started = time.monotonic()

        with pytest.raises(FetchError):
            with transport.fetch() as lines:
                list(lines)

        assert time.monotonic() - started < 1.5

    def test_client_is_reused(self, mock_haproxy_http):
        requests = []
        transport = Transport.from_uri(SCRAPE_URI, http_transport=mock_haproxy_http("a,b\n", requests=requests))
        client = transport.client

        with patch.object(client, "send", wraps=client.send) as send:
            for _ in range(2):
                with transport.fetch() as lines:
                    assert list(lines) == ["a,b"]

        assert send.call_count == 2
        assert transport.client is client
        assert len(requests) == 2


class TestFileTransport:
    """Test suite for local file fetching."""

    def test_fetch_file(self, tmp_path, stats_csv):
        path = tmp_path / "stats.csv"
        path.write_text(stats_csv)

        with Transport.from_uri(path.as_uri()).fetch() as lines:
            received = [line.rstrip("\r\n") for line in lines]

        assert received == stats_csv.splitlines()

    def test_missing_file(self, tmp_path):
        transport = Transport.from_uri((tmp_path / "missing.csv").as_uri())

        with pytest.raises(FetchError):
            with transport.fetch():
                pass


@requires_unix
class TestUnixSocketTransport:
    """Test suite for the stats socket."""

    def test_show_stat(self, haproxy_unix_server):
        path = haproxy_unix_server(SERVER_WITHOUT_CHECKS + "\n\n")

        with Transport.from_uri("unix:" + path).fetch() as lines:
            received = list(lines)

        assert received == [SERVER_WITHOUT_CHECKS, ""]

    def test_unterminated_last_line(self, haproxy_unix_server):
        path = haproxy_unix_server("a,b\nc,d")

        with Transport.from_uri("unix:" + path).fetch() as lines:
            assert list(lines) == ["a,b", "c,d"]

    def test_socket_not_found(self, unix_socket_path):
        transport = Transport.from_uri("unix:" + unix_socket_path, timeout=1)

        with pytest.raises(FetchError):
            with transport.fetch():
                pass

    def test_deadline(self, haproxy_unix_server):
        """A socket that never answers fails once the deadline passes."""
        path = haproxy_unix_server(hang=True)
        transport = Transport.from_uri("unix:" + path, timeout=0.5)

        with pytest.raises(FetchError):
            with transport.fetch() as lines:
                list(lines)
