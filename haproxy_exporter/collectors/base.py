"""Base class for Prometheus custom collectors."""

from abc import ABC, abstractmethod
from functools import wraps
from typing import Iterable, Optional
import logging

from prometheus_client.metrics_core import Metric


class BaseCollector(ABC):
    """
    Abstract base class for collectors registered with a
    ``prometheus_client`` registry.

    The registry calls ``describe()`` once at registration, so it must not
    touch the network; ``collect()`` is called for every HTTP pull.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize base collector.

        Args:
            logger: Parent logger; a child named after the class is used
        """
        logger = logger or logging.getLogger("haproxy_exporter")
        self.logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    def describe(self) -> Iterable[Metric]:
        """
        Enumerate every metric family this collector can expose.

        Returns:
            Iterable[Metric]: Metric families without samples
        """
        pass

    @abstractmethod
    def collect(self) -> Iterable[Metric]:
        """
        Scrape and return current metric families.

        Returns:
            Iterable[Metric]: Metric families with samples

        Note:
            Implementations must not raise; the metrics endpoint would
            otherwise answer with an HTTP 500 instead of ``up 0``.
        """
        pass


def safe_scrape(func):
    """
    Decorator that turns unexpected scrape exceptions into a failed scrape.

    The wrapped method belongs to a collector with ``logger`` and
    ``outcome`` attributes. Known failure modes are handled inside the
    scrape itself; this only catches bugs and surprises.

    Args:
        func: Scrape method to wrap

    Returns:
        Wrapped method returning an empty observation list on error
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception as e:
            self.logger.error(f"Scrape failed: {e}", exc_info=True)
            self.outcome.up = False
            self.outcome.last_error = str(e)
            return []
    return wrapper
