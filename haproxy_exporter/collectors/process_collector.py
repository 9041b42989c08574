"""Process metrics of the HAProxy master, located through its PID file."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from prometheus_client import ProcessCollector
from prometheus_client.metrics_core import Metric

from .base import BaseCollector
from .field_registry import NAMESPACE


class PidFileProcessCollector(BaseCollector):
    """
    Exports ``haproxy_process_*`` metrics for the PID stored in a file.

    The PID file is re-read on every collect so HAProxy restarts are
    followed. An unreadable file only drops the process metrics of that
    pull. Depends on /proc being available.
    """

    def __init__(self, pid_file: str, logger: Optional[logging.Logger] = None, proc: str = "/proc"):
        super().__init__(logger)
        self.pid_file = Path(pid_file)
        self._inner = ProcessCollector(
            namespace=NAMESPACE,
            pid=self.read_pid,
            proc=proc,
            registry=None
        )

    def read_pid(self) -> int:
        """
        Read the HAProxy PID.

        Raises:
            OSError: If the file can't be read
            ValueError: If it doesn't contain an integer
        """
        content = self.pid_file.read_text()
        try:
            return int(content.strip())
        except ValueError:
            raise ValueError(f"can't parse pid file {self.pid_file}: {content.strip()!r}") from None

    def describe(self) -> Iterable[Metric]:
        # The process family set depends on the platform; skip registry checks.
        return []

    def collect(self) -> Iterable[Metric]:
        try:
            return list(self._inner.collect())
        except (OSError, ValueError) as e:
            self.logger.error(f"Can't read pid file: {e}")
            return []
