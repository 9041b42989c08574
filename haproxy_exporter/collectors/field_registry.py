"""Static column-to-metric tables for the HAProxy CSV statistics format."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..utils.metrics import MetricKind
from .errors import ConfigurationError

NAMESPACE = "haproxy"


class RowCategory(Enum):
    """Proxy object type encoded in the ``type`` column."""

    FRONTEND = "0"
    BACKEND = "1"
    SERVER = "2"
    OTHER = "3"

    @property
    def label_names(self) -> Tuple[str, ...]:
        """Natural labels taken from the row (pxname, then svname)."""
        return _LABEL_NAMES[self]


_LABEL_NAMES = {
    RowCategory.FRONTEND: ("frontend",),
    RowCategory.BACKEND: ("backend",),
    RowCategory.SERVER: ("backend", "server"),
    RowCategory.OTHER: (),
}


class ValueConversion(Enum):
    """How the raw column text becomes a sample value."""

    INTEGER = "integer"
    STATUS = "status"
    MILLISECONDS_TO_SECONDS = "ms_to_seconds"


@dataclass(frozen=True)
class CsvLayout:
    """
    Column positions of the stats CSV that the parser depends on.

    HAProxy has appended columns in almost every release (1.4 emitted 52,
    1.7 emits 80+), but the leading 33 columns and the positions below have
    stayed fixed. A future layout change only needs a new instance.
    """

    minimum_field_count: int = 33
    proxy_name_field: int = 0
    service_name_field: int = 1
    type_field: int = 32
    delimiter: str = ","
    comment_prefix: str = "#"


DEFAULT_LAYOUT = CsvLayout()


@dataclass(frozen=True)
class FieldSpec:
    """Describes the metric exported for one CSV column."""

    index: int
    name: str
    documentation: str
    kind: MetricKind = MetricKind.GAUGE
    conversion: ValueConversion = ValueConversion.INTEGER
    const_labels: Tuple[Tuple[str, str], ...] = ()

    @property
    def const_label_names(self) -> Tuple[str, ...]:
        return tuple(k for k, _ in self.const_labels)

    @property
    def const_label_values(self) -> Tuple[str, ...]:
        return tuple(v for _, v in self.const_labels)

    def full_name(self, category: RowCategory) -> str:
        """Fully qualified metric name, e.g. ``haproxy_server_bytes_in_total``."""
        return f"{NAMESPACE}_{category.name.lower()}_{self.name}"


def _field(
    index: int,
    name: str,
    documentation: str,
    conversion: ValueConversion = ValueConversion.INTEGER,
    const_labels: Tuple[Tuple[str, str], ...] = (),
) -> FieldSpec:
    kind = MetricKind.COUNTER if name.endswith("_total") else MetricKind.GAUGE
    return FieldSpec(index, name, documentation, kind, conversion, const_labels)


def _http_response_fields() -> List[FieldSpec]:
    codes = ("1xx", "2xx", "3xx", "4xx", "5xx", "other")
    return [
        _field(39 + offset, "http_responses_total", "Total of HTTP responses.",
               const_labels=(("code", code),))
        for offset, code in enumerate(codes)
    ]


def _compression_fields() -> List[FieldSpec]:
    return [
        _field(51, "compressor_bytes_in_total", "Number of HTTP response bytes fed to the compressor"),
        _field(52, "compressor_bytes_out_total", "Number of HTTP response bytes emitted by the compressor"),
        _field(53, "compressor_bytes_bypassed_total", "Number of bytes that bypassed the HTTP compressor"),
        _field(54, "http_responses_compressed_total", "Number of HTTP responses that were compressed"),
    ]


def _frontend_fields() -> List[FieldSpec]:
    return [
        _field(4, "current_sessions", "Current number of active sessions."),
        _field(5, "max_sessions", "Maximum observed number of active sessions."),
        _field(6, "limit_sessions", "Configured session limit."),
        _field(7, "sessions_total", "Total number of sessions."),
        _field(8, "bytes_in_total", "Current total of incoming bytes."),
        _field(9, "bytes_out_total", "Current total of outgoing bytes."),
        _field(10, "requests_denied_total", "Total of requests denied for security."),
        _field(12, "request_errors_total", "Total of request errors."),
        _field(33, "current_session_rate", "Current number of sessions per second over last elapsed second."),
        _field(34, "limit_session_rate", "Configured limit on new sessions per second."),
        _field(35, "max_session_rate", "Maximum observed number of sessions per second."),
        *_http_response_fields(),
        _field(48, "http_requests_total", "Total HTTP requests."),
        *_compression_fields(),
        _field(79, "connections_total", "Total number of connections"),
    ]


def _backend_fields() -> List[FieldSpec]:
    ms = ValueConversion.MILLISECONDS_TO_SECONDS
    return [
        _field(2, "current_queue", "Current number of queued requests not assigned to any server."),
        _field(3, "max_queue", "Maximum observed number of queued requests not assigned to any server."),
        _field(4, "current_sessions", "Current number of active sessions."),
        _field(5, "max_sessions", "Maximum observed number of active sessions."),
        _field(6, "limit_sessions", "Configured session limit."),
        _field(7, "sessions_total", "Total number of sessions."),
        _field(8, "bytes_in_total", "Current total of incoming bytes."),
        _field(9, "bytes_out_total", "Current total of outgoing bytes."),
        _field(13, "connection_errors_total", "Total of connection errors."),
        _field(14, "response_errors_total", "Total of response errors."),
        _field(15, "retry_warnings_total", "Total of retry warnings."),
        _field(16, "redispatch_warnings_total", "Total of redispatch warnings."),
        _field(17, "up", "Current health status of the backend (1 = UP, 0 = DOWN).",
               conversion=ValueConversion.STATUS),
        _field(18, "weight", "Total weight of the servers in the backend."),
        _field(19, "current_server", "Current number of active servers"),
        _field(30, "server_selected_total",
               "Total number of times a server was selected, either for new sessions, or when re-dispatching."),
        _field(33, "current_session_rate", "Current number of sessions per second over last elapsed second."),
        _field(35, "max_session_rate", "Maximum number of sessions per second."),
        *_http_response_fields(),
        *_compression_fields(),
        _field(58, "http_queue_time_average_seconds",
               "Avg. HTTP queue time for last 1024 successful connections.", conversion=ms),
        _field(59, "http_connect_time_average_seconds",
               "Avg. HTTP connect time for last 1024 successful connections.", conversion=ms),
        _field(60, "http_response_time_average_seconds",
               "Avg. HTTP response time for last 1024 successful connections.", conversion=ms),
        _field(61, "http_total_time_average_seconds",
               "Avg. HTTP total time for last 1024 successful connections.", conversion=ms),
    ]


def _server_fields() -> List[FieldSpec]:
    return [
        _field(2, "current_queue", "Current number of queued requests assigned to this server."),
        _field(3, "max_queue", "Maximum observed number of queued requests assigned to this server."),
        _field(4, "current_sessions", "Current number of active sessions."),
        _field(5, "max_sessions", "Maximum observed number of active sessions."),
        _field(6, "limit_sessions", "Configured session limit."),
        _field(7, "sessions_total", "Total number of sessions."),
        _field(8, "bytes_in_total", "Current total of incoming bytes."),
        _field(9, "bytes_out_total", "Current total of outgoing bytes."),
        _field(13, "connection_errors_total", "Total of connection errors."),
        _field(14, "response_errors_total", "Total of response errors."),
        _field(15, "retry_warnings_total", "Total of retry warnings."),
        _field(16, "redispatch_warnings_total", "Total of redispatch warnings."),
        _field(17, "up", "Current health status of the server (1 = UP, 0 = DOWN).",
               conversion=ValueConversion.STATUS),
        _field(18, "weight", "Current weight of the server."),
        _field(21, "check_failures_total", "Total number of failed health checks."),
        _field(24, "downtime_seconds_total", "Total downtime in seconds."),
        _field(30, "server_selected_total",
               "Total number of times a server was selected, either for new sessions, or when re-dispatching."),
        _field(33, "current_session_rate", "Current number of sessions per second over last elapsed second."),
        _field(35, "max_session_rate", "Maximum observed number of sessions per second."),
        _field(38, "check_duration_milliseconds", "Previously run health check duration, in milliseconds"),
        *_http_response_fields(),
    ]


def _index(fields: Iterable[FieldSpec]) -> Dict[int, FieldSpec]:
    table: Dict[int, FieldSpec] = {}
    for spec in fields:
        if spec.index in table:
            raise ConfigurationError(f"duplicate field index {spec.index} ({spec.name})")
        table[spec.index] = spec
    return table


@dataclass(frozen=True)
class SelectedMetricSet:
    """Server metrics kept after applying the configured allow-list."""

    fields: Mapping[int, FieldSpec] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self.fields[i] for i in sorted(self.fields))

    def indices(self) -> List[int]:
        return sorted(self.fields)


class FieldRegistry:
    """
    Per-category column tables.

    Built once at startup and handed to the collector; nothing here is
    mutated after construction.
    """

    def __init__(
        self,
        frontend: Iterable[FieldSpec],
        backend: Iterable[FieldSpec],
        server: Iterable[FieldSpec],
        layout: CsvLayout = DEFAULT_LAYOUT,
    ):
        self.layout = layout
        self._tables: Dict[RowCategory, Dict[int, FieldSpec]] = {
            RowCategory.FRONTEND: _index(frontend),
            RowCategory.BACKEND: _index(backend),
            RowCategory.SERVER: _index(server),
        }

    @classmethod
    def default(cls) -> "FieldRegistry":
        """Registry matching the HAProxy 1.4 through 1.7 CSV columns."""
        return cls(_frontend_fields(), _backend_fields(), _server_fields())

    def fields_for(self, category: RowCategory) -> Dict[int, FieldSpec]:
        """Full table for a category; empty for ``OTHER``."""
        return dict(self._tables.get(category, {}))

    def server_field_list(self) -> str:
        """Default ``server_metric_fields`` value: every server column."""
        return ",".join(str(i) for i in sorted(self._tables[RowCategory.SERVER]))

    def select_server_fields(self, allow_list: Optional[str]) -> SelectedMetricSet:
        """
        Filter the server table by a comma separated list of column indices.

        Args:
            allow_list: e.g. "2,3,17"; None selects everything, "" nothing

        Returns:
            SelectedMetricSet: Matching server field specs

        Raises:
            ConfigurationError: If any entry is not an integer
        """
        server = self._tables[RowCategory.SERVER]
        if allow_list is None:
            return SelectedMetricSet(dict(server))
        if allow_list.strip() == "":
            return SelectedMetricSet({})

        selected = set()
        for entry in allow_list.split(","):
            try:
                selected.add(int(entry.strip()))
            except ValueError:
                raise ConfigurationError(f"invalid server metric field number: {entry}") from None

        return SelectedMetricSet({i: spec for i, spec in server.items() if i in selected})
