"""HAProxy stats collector."""

import logging
import threading
from typing import Dict, Iterator, List, Optional, Tuple

import httpx
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from ..utils.metrics import MetricKind, Observation, ScrapeOutcome
from .base import BaseCollector, safe_scrape
from .csv_parser import CsvParser
from .errors import FetchError, StatsReadError
from .field_registry import NAMESPACE, FieldRegistry, FieldSpec, RowCategory, SelectedMetricSet
from .metric_mapper import MetricMapper
from .transport import Transport


def _family(name: str, documentation: str, kind: MetricKind, label_names: Tuple[str, ...]) -> Metric:
    if kind is MetricKind.COUNTER:
        return CounterMetricFamily(name, documentation, labels=list(label_names))
    return GaugeMetricFamily(name, documentation, labels=list(label_names))


class HAProxyCollector(BaseCollector):
    """
    Scrapes one HAProxy instance on every collect.

    Concurrent collects are serialized: the lock is held for the whole
    fetch, parse and map cycle, and the exporter's own counters only change
    while it is held.
    """

    UP_DOC = "Was the last scrape of haproxy successful."
    SCRAPES_DOC = "Current total HAProxy scrapes."
    PARSE_FAILURES_DOC = "Number of errors while parsing CSV."

    def __init__(
        self,
        uri: str,
        ssl_verify: bool = True,
        server_fields: Optional[SelectedMetricSet] = None,
        timeout: float = 5.0,
        logger: Optional[logging.Logger] = None,
        registry: Optional[FieldRegistry] = None,
        http_transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize HAProxy collector.

        Args:
            uri: Scrape URI (http, https, file or unix scheme)
            ssl_verify: Verify TLS certificates of an https URI
            server_fields: Exported server metrics; all of them when None
            timeout: Deadline in seconds for one fetch
            logger: Logger instance
            registry: Field tables; the built-in HAProxy layout when None
            http_transport: Optional httpx transport override

        Raises:
            UnsupportedSchemeError: If the URI scheme is not supported
            ConfigurationError: If the URI or timeout is invalid
        """
        super().__init__(logger)
        self.uri = uri
        self.registry = registry or FieldRegistry.default()
        if server_fields is None:
            server_fields = self.registry.select_server_fields(None)
        self.server_fields = server_fields
        self.transport = Transport.from_uri(uri, ssl_verify, timeout, http_transport)
        self.mapper = MetricMapper(self.logger)
        self.outcome = ScrapeOutcome()
        self._lock = threading.Lock()
        self._fields: Dict[RowCategory, List[FieldSpec]] = {
            RowCategory.FRONTEND: list(self.registry.fields_for(RowCategory.FRONTEND).values()),
            RowCategory.BACKEND: list(self.registry.fields_for(RowCategory.BACKEND).values()),
            RowCategory.SERVER: list(server_fields),
            RowCategory.OTHER: [],
        }

    def describe(self) -> Iterator[Metric]:
        """Yield every family the collector may expose, without scraping."""
        families: Dict[str, Metric] = {}
        for category in (RowCategory.FRONTEND, RowCategory.BACKEND, RowCategory.SERVER):
            for spec in sorted(self._fields[category], key=lambda s: s.index):
                name = spec.full_name(category)
                if name not in families:
                    families[name] = _family(
                        name, spec.documentation, spec.kind,
                        category.label_names + spec.const_label_names
                    )
        yield from families.values()
        yield GaugeMetricFamily(f"{NAMESPACE}_up", self.UP_DOC)
        yield CounterMetricFamily(f"{NAMESPACE}_exporter_scrapes_total", self.SCRAPES_DOC)
        yield CounterMetricFamily(f"{NAMESPACE}_exporter_csv_parse_failures_total", self.PARSE_FAILURES_DOC)

    def collect(self) -> List[Metric]:
        """Scrape HAProxy and return row metrics plus exporter health."""
        with self._lock:
            observations = self.scrape()
            families = self._group(observations)
            families.extend(self._health_families())
        return families

    @safe_scrape
    def scrape(self) -> List[Observation]:
        """
        Run one fetch, parse and map cycle.

        Must be called with the lock held.

        Returns:
            List[Observation]: Row observations; empty if the fetch failed
        """
        self.outcome.start_scrape()
        parser = CsvParser(self.registry.layout, self.logger)
        observations: List[Observation] = []
        failures = 0

        try:
            with self.transport.fetch() as lines:
                for row in parser.parse(lines):
                    mapped, mapping_failures = self.mapper.map(row, self._fields[row.category])
                    observations.extend(mapped)
                    failures += mapping_failures
            self.outcome.up = True

        except FetchError as e:
            self.logger.error(f"Can't scrape HAProxy: {e}", extra={"uri": self.uri})
            self.outcome.up = False
            self.outcome.last_error = str(e)
            observations = []

        except StatsReadError as e:
            self.logger.error(f"Unexpected error while reading CSV: {e}", extra={"uri": self.uri})
            self.outcome.up = False
            self.outcome.last_error = str(e)
            failures += 1

        finally:
            self.outcome.record_failures(parser.failures + failures)

        self.logger.debug(
            f"Scrape finished: up={int(self.outcome.up)}, {len(observations)} samples"
        )
        return observations

    def _group(self, observations: List[Observation]) -> List[Metric]:
        families: Dict[str, Metric] = {}
        for obs in observations:
            family = families.get(obs.name)
            if family is None:
                family = _family(obs.name, obs.documentation, obs.kind, obs.label_names)
                families[obs.name] = family
            family.add_metric(list(obs.label_values), obs.value)
        return list(families.values())

    def _health_families(self) -> List[Metric]:
        return [
            GaugeMetricFamily(f"{NAMESPACE}_up", self.UP_DOC, value=1 if self.outcome.up else 0),
            CounterMetricFamily(
                f"{NAMESPACE}_exporter_scrapes_total", self.SCRAPES_DOC,
                value=self.outcome.total_scrapes
            ),
            CounterMetricFamily(
                f"{NAMESPACE}_exporter_csv_parse_failures_total", self.PARSE_FAILURES_DOC,
                value=self.outcome.parse_failures
            ),
        ]
