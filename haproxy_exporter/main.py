"""Main application entry point for the HAProxy exporter."""

import argparse
import logging
import platform
import signal
import sys
from typing import Any, Dict, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Info
from pydantic import ValidationError
import yaml

from . import __version__
from .collectors.errors import ConfigurationError
from .collectors.field_registry import FieldRegistry
from .collectors.haproxy_collector import HAProxyCollector
from .collectors.process_collector import PidFileProcessCollector
from .config.loader import ConfigLoader
from .config.models import ExporterSystemConfig
from .config.settings import Settings
from .utils.logger import setup_logger
from .web import create_app, make_metrics_server


class ExporterApp:
    """
    Main exporter application.

    Loads configuration, builds the HAProxy collector and serves it over
    HTTP until interrupted.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        registry: CollectorRegistry = REGISTRY
    ):
        """
        Initialize exporter application.

        Args:
            config_path: Path to configuration file (optional)
            overrides: Per-section values taking precedence over the file
            registry: Registry the collectors are added to

        Raises:
            SystemExit: If the configuration is invalid
        """
        self.config_path = config_path
        self.overrides = overrides or {}
        self.registry = registry
        self.server = None

        initial_level = self.overrides.get("logging", {}).get("level") or Settings.log_level() or "INFO"
        self.logger = setup_logger("haproxy_exporter", initial_level)

        self.config = self._load_config()
        self.logger = setup_logger("haproxy_exporter", self.config.logging.level)

        self.field_registry = FieldRegistry.default()
        self.collector = self._create_collector()
        self.process_collector = None
        if self.config.haproxy.pid_file:
            self.process_collector = PidFileProcessCollector(self.config.haproxy.pid_file, self.logger)

    def _load_config(self) -> ExporterSystemConfig:
        """
        Load and validate configuration.

        Returns:
            ExporterSystemConfig: Loaded configuration

        Raises:
            SystemExit: If configuration is invalid
        """
        try:
            config = ConfigLoader.load(self.config_path, self.overrides)
            self.logger.info(f"Configuration loaded (file: {self.config_path or 'none'})")
            return config

        except (ValidationError, yaml.YAMLError, OSError) as e:
            self.logger.error(f"Failed to load configuration: {e}")
            sys.exit(1)

    def _create_collector(self) -> HAProxyCollector:
        """
        Build the HAProxy collector from configuration.

        Raises:
            SystemExit: On an invalid field list or scrape URI
        """
        haproxy = self.config.haproxy
        try:
            server_fields = self.field_registry.select_server_fields(haproxy.server_metric_fields)
        except ConfigurationError as e:
            self.logger.error(f"Error filtering server metrics: {e}")
            sys.exit(1)

        try:
            return HAProxyCollector(
                uri=haproxy.scrape_uri,
                ssl_verify=haproxy.ssl_verify,
                server_fields=server_fields,
                timeout=haproxy.timeout_seconds,
                logger=self.logger,
                registry=self.field_registry,
            )
        except ConfigurationError as e:
            self.logger.error(f"Error creating an exporter: {e}")
            sys.exit(1)

    def register(self) -> None:
        """Add the exporter's collectors to the registry."""
        self.registry.register(self.collector)
        build_info = Info(
            "haproxy_exporter_build",
            "A metric with a constant '1' value labeled by version and python version of haproxy_exporter.",
            registry=self.registry
        )
        build_info.info({"version": __version__, "pythonversion": platform.python_version()})
        if self.process_collector is not None:
            self.registry.register(self.process_collector)

    def _signal_handler(self, signum, frame):
        """
        Handle shutdown signals.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, shutting down")
        sys.exit(0)

    def run(self) -> None:
        """Serve metrics until SIGTERM/SIGINT."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        self.logger.info(f"Starting haproxy_exporter (version={__version__})")
        self.register()

        web = self.config.web
        app = create_app(self.registry, web.telemetry_path)
        try:
            self.server = make_metrics_server(app, web.host, web.port, self.logger)
        except OSError as e:
            self.logger.error(f"Error starting HTTP server: {e}")
            sys.exit(1)

        self.logger.info(f"Listening on address {web.listen_address}")
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()
            self.logger.info("HTTP server stopped")


def build_parser() -> argparse.ArgumentParser:
    """Command line flags; every flag overrides the config file value."""
    parser = argparse.ArgumentParser(
        description='Prometheus exporter for HAProxy statistics',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scrape the stats page of a local HAProxy
  haproxy-exporter --haproxy.scrape-uri "http://localhost:8404/;csv"

  # Scrape through the stats socket
  haproxy-exporter --haproxy.scrape-uri unix:/run/haproxy/admin.sock

  # Only export server status and weight
  haproxy-exporter --haproxy.server-metric-fields 17,18
        """
    )

    parser.add_argument(
        '--config',
        default=Settings.config_path(),
        help='Path to configuration file (default: config/config.yaml or HAPROXY_EXPORTER_CONFIG)'
    )
    parser.add_argument(
        '--web.listen-address', dest='listen_address',
        help='Address to listen on for web interface and telemetry (default: :9101)'
    )
    parser.add_argument(
        '--web.telemetry-path', dest='telemetry_path',
        help='Path under which to expose metrics (default: /metrics)'
    )
    parser.add_argument(
        '--haproxy.scrape-uri', dest='scrape_uri',
        help='URI on which to scrape HAProxy (default: http://localhost/;csv)'
    )
    parser.add_argument(
        '--haproxy.ssl-verify', dest='ssl_verify',
        action=argparse.BooleanOptionalAction, default=None,
        help='Verify the SSL certificate of the scrape URI (default: true)'
    )
    parser.add_argument(
        '--haproxy.server-metric-fields', dest='server_metric_fields',
        help='Comma-separated list of exported server metrics (default: all; '
             f'{FieldRegistry.default().server_field_list()})'
    )
    parser.add_argument(
        '--haproxy.timeout', dest='timeout_seconds', type=float,
        help='Timeout in seconds for trying to get stats from HAProxy (default: 5)'
    )
    parser.add_argument(
        '--haproxy.pid-file', dest='pid_file',
        help='Path to HAProxy pid file; exports haproxy_process_* metrics when set'
    )
    parser.add_argument(
        '--log-level', dest='log_level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO or LOG_LEVEL env var)'
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    """Group parsed flags by config section."""
    return {
        "haproxy": {
            "scrape_uri": args.scrape_uri,
            "ssl_verify": args.ssl_verify,
            "server_metric_fields": args.server_metric_fields,
            "timeout_seconds": args.timeout_seconds,
            "pid_file": args.pid_file,
        },
        "web": {
            "listen_address": args.listen_address,
            "telemetry_path": args.telemetry_path,
        },
        "logging": {
            "level": args.log_level,
        },
    }


def main(argv=None):
    """
    CLI entry point.

    Parses command-line arguments and starts the exporter.
    """
    args = build_parser().parse_args(argv)

    try:
        app = ExporterApp(config_path=args.config, overrides=overrides_from_args(args))
        app.run()
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logging.error(f"Application startup failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
