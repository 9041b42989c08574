"""Metric data structures shared by the scrape pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class MetricKind(Enum):
    """Prometheus metric type of an exported series."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class Observation:
    """One labeled sample produced while mapping a stats row."""

    name: str
    documentation: str
    kind: MetricKind
    label_names: Tuple[str, ...]
    label_values: Tuple[str, ...]
    value: float


@dataclass
class ScrapeOutcome:
    """
    Health state of the exporter itself.

    ``total_scrapes`` and ``parse_failures`` live for the whole process and
    only ever grow; ``up`` is overwritten by every scrape.
    """

    up: bool = False
    total_scrapes: int = 0
    parse_failures: int = 0
    last_error: str = field(default="", compare=False)

    def start_scrape(self) -> None:
        """Count a new scrape attempt."""
        self.total_scrapes += 1
        self.last_error = ""

    def record_failures(self, count: int = 1) -> None:
        """Add row-level or structural parse failures."""
        self.parse_failures += count
