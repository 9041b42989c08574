"""WSGI front end serving the landing page and the metrics endpoint."""

import logging
from socketserver import ThreadingMixIn
from typing import Callable, Iterable, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

LANDING_PAGE = """<html>
<head><title>Haproxy Exporter</title></head>
<body>
<h1>Haproxy Exporter</h1>
<p><a href='{telemetry_path}'>Metrics</a></p>
</body>
</html>
"""


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Handle each pull in its own thread; collectors serialize themselves."""

    daemon_threads = True


def _handler_class(logger: logging.Logger):
    class _LoggingHandler(WSGIRequestHandler):
        def log_message(self, format, *args):
            logger.debug(format % args, extra={"client": self.address_string()})

    return _LoggingHandler


def create_app(registry: CollectorRegistry, telemetry_path: str = "/metrics") -> Callable:
    """
    Build the WSGI application.

    Args:
        registry: Registry holding the exporter collectors
        telemetry_path: Path serving the Prometheus exposition

    Returns:
        WSGI callable
    """
    metrics_app = make_wsgi_app(registry)
    page = LANDING_PAGE.format(telemetry_path=telemetry_path).encode("utf-8")

    def app(environ, start_response) -> Iterable[bytes]:
        path = environ.get("PATH_INFO") or "/"
        if path == telemetry_path:
            return metrics_app(environ, start_response)
        if path == "/":
            start_response("200 OK", [
                ("Content-Type", "text/html; charset=utf-8"),
                ("Content-Length", str(len(page))),
            ])
            return [page]
        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"404 page not found\n"]

    return app


def make_metrics_server(
    app: Callable,
    host: str,
    port: int,
    logger: Optional[logging.Logger] = None
) -> WSGIServer:
    """Bind a threading WSGI server for ``app``; the caller runs serve_forever()."""
    logger = logger or logging.getLogger(__name__)
    return make_server(
        host, port, app,
        server_class=ThreadingWSGIServer,
        handler_class=_handler_class(logger)
    )
