"""Fetch strategies for the HAProxy statistics endpoint."""

import socket
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple, Type
from urllib.parse import unquote, urlsplit

import httpx

from .errors import ConfigurationError, FetchError, StatsReadError, UnsupportedSchemeError

SHOW_STAT_COMMAND = b"show stat\n"
_RECV_SIZE = 65536


def _remaining(deadline: float) -> float:
    """Seconds left before ``deadline``; raises once it has passed."""
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("deadline exceeded")
    return left


def _split_lines(chunks: Iterable[bytes], deadline: float) -> Iterator[str]:
    """
    Reassemble newline separated lines from raw chunks.

    The deadline is checked after every chunk, not only once a line is
    complete.
    """
    buffer = b""
    for chunk in chunks:
        _remaining(deadline)
        buffer += chunk
        *complete, buffer = buffer.split(b"\n")
        for raw in complete:
            yield raw.rstrip(b"\r").decode("utf-8", errors="replace")
    if buffer:
        yield buffer.rstrip(b"\r").decode("utf-8", errors="replace")


def _guarded_lines(
    lines: Iterable[str],
    deadline: float,
    timeout_errors: Tuple[Type[BaseException], ...],
    stream_errors: Tuple[Type[BaseException], ...]
) -> Iterator[str]:
    """
    Enforce the fetch deadline while the payload is consumed.

    Deadline expiry is a fetch failure like any other timeout; any other
    breakage of an already open stream is a StatsReadError.
    """
    try:
        for line in lines:
            if time.monotonic() > deadline:
                raise TimeoutError("deadline exceeded while reading stats")
            yield line
    except timeout_errors as e:
        raise FetchError(f"{type(e).__name__}: {e}") from e
    except stream_errors as e:
        raise StatsReadError(f"{type(e).__name__}: {e}") from e


class Transport(ABC):
    """
    Fetches one stats payload per call to ``fetch``.

    Never retries: a failed fetch is reported once and the next scrape
    starts fresh.
    """

    SCHEMES: Tuple[str, ...] = ()

    def __init__(self, uri: str, timeout: float):
        self.uri = uri
        self.timeout = timeout

    @classmethod
    def from_uri(
        cls,
        uri: str,
        ssl_verify: bool = True,
        timeout: float = 5.0,
        http_transport: Optional[httpx.BaseTransport] = None
    ) -> "Transport":
        """
        Pick the fetch strategy for a scrape URI.

        Args:
            uri: Scrape URI (http, https, file or unix scheme)
            ssl_verify: Verify TLS certificates for https
            timeout: Deadline in seconds for one complete fetch
            http_transport: Optional httpx transport override for HTTP(S)

        Returns:
            Transport: Strategy bound to the URI

        Raises:
            UnsupportedSchemeError: If the scheme is not supported
            ConfigurationError: If the URI cannot be parsed or timeout <= 0
        """
        if timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")
        try:
            parts = urlsplit(uri)
        except ValueError as e:
            raise ConfigurationError(f"invalid scrape URI {uri!r}: {e}") from e

        scheme = parts.scheme.lower()
        if scheme in HTTPTransport.SCHEMES:
            return HTTPTransport(uri, timeout, ssl_verify, http_transport)
        if scheme in FileTransport.SCHEMES:
            return FileTransport(uri, timeout, unquote(parts.path))
        if scheme in UnixSocketTransport.SCHEMES:
            return UnixSocketTransport(uri, timeout, unquote(parts.path))
        raise UnsupportedSchemeError(parts.scheme)

    @abstractmethod
    @contextmanager
    def fetch(self) -> Iterator[Iterator[str]]:
        """
        Open the stats source and yield its decoded lines.

        Raises:
            FetchError: The source could not be opened, or the deadline
                passed while its lines were being read
            StatsReadError: Raised by the line iterator if the stream breaks
        """


class HTTPTransport(Transport):
    """
    GET the CSV stats page over HTTP(S).

    One client is kept for the life of the transport. httpx bounds each
    network read by ``timeout``; the overall deadline is checked after every
    body chunk, so a peer that trickles bytes without finishing a line is
    still cut off.
    """

    SCHEMES = ("http", "https")

    def __init__(
        self,
        uri: str,
        timeout: float,
        ssl_verify: bool = True,
        http_transport: Optional[httpx.BaseTransport] = None
    ):
        super().__init__(uri, timeout)
        self.ssl_verify = ssl_verify
        self.client = httpx.Client(verify=ssl_verify, timeout=timeout, transport=http_transport)

    @contextmanager
    def fetch(self) -> Iterator[Iterator[str]]:
        deadline = time.monotonic() + self.timeout
        try:
            response = self.client.send(self.client.build_request("GET", self.uri), stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"{type(e).__name__}: {e}") from e

        try:
            if not response.is_success:
                raise FetchError(f"HTTP status {response.status_code}")
            yield _guarded_lines(
                _split_lines(response.iter_bytes(), deadline),
                deadline,
                (httpx.TimeoutException, TimeoutError),
                (httpx.HTTPError, httpx.StreamError)
            )
        finally:
            response.close()


class FileTransport(Transport):
    """Read a stats CSV dump from the local filesystem."""

    SCHEMES = ("file",)

    def __init__(self, uri: str, timeout: float, path: str):
        super().__init__(uri, timeout)
        self.path = Path(path)

    @contextmanager
    def fetch(self) -> Iterator[Iterator[str]]:
        deadline = time.monotonic() + self.timeout
        try:
            handle = self.path.open("r", encoding="utf-8", errors="replace", newline="")
        except OSError as e:
            raise FetchError(f"can't open {self.path}: {e}") from e
        with handle:
            yield _guarded_lines(handle, deadline, (TimeoutError,), (OSError,))


class UnixSocketTransport(Transport):
    """Send ``show stat`` to the HAProxy stats socket and read the reply."""

    SCHEMES = ("unix",)

    def __init__(self, uri: str, timeout: float, path: str):
        super().__init__(uri, timeout)
        self.path = path

    @contextmanager
    def fetch(self) -> Iterator[Iterator[str]]:
        # One deadline covers connect, write and the whole read.
        deadline = time.monotonic() + self.timeout
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            try:
                sock.settimeout(_remaining(deadline))
                sock.connect(self.path)
                sock.settimeout(_remaining(deadline))
                sent = sock.send(SHOW_STAT_COMMAND)
            except OSError as e:
                raise FetchError(f"{type(e).__name__}: {e}") from e
            if sent != len(SHOW_STAT_COMMAND):
                raise FetchError("write error")

            yield _guarded_lines(
                _split_lines(self._recv_chunks(sock, deadline), deadline),
                deadline,
                (TimeoutError, socket.timeout),
                (OSError,)
            )
        finally:
            sock.close()

    @staticmethod
    def _recv_chunks(sock: socket.socket, deadline: float) -> Iterator[bytes]:
        while True:
            sock.settimeout(_remaining(deadline))
            chunk = sock.recv(_RECV_SIZE)
            if not chunk:
                return
            yield chunk
