"""Tolerant reader for the HAProxy ``show stat`` CSV format."""

import csv
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from .field_registry import DEFAULT_LAYOUT, CsvLayout, RowCategory


@dataclass
class StatsRow:
    """One decoded CSV record and its proxy object type."""

    fields: List[str]
    category: RowCategory
    layout: CsvLayout = DEFAULT_LAYOUT

    @property
    def proxy_name(self) -> str:
        return self.fields[self.layout.proxy_name_field]

    @property
    def service_name(self) -> str:
        return self.fields[self.layout.service_name_field]

    def label_values(self) -> Tuple[str, ...]:
        """Values for ``category.label_names``."""
        if self.category is RowCategory.SERVER:
            return (self.proxy_name, self.service_name)
        if self.category is RowCategory.OTHER:
            return ()
        return (self.proxy_name,)


class CsvParser:
    """
    Decode stats lines into classified rows.

    Broken lines are counted in ``failures`` and skipped; they never stop
    the scrape. Errors raised by the line iterator itself (a broken stream)
    propagate to the caller unchanged.
    """

    def __init__(self, layout: CsvLayout = DEFAULT_LAYOUT, logger: Optional[logging.Logger] = None):
        self.layout = layout
        self.logger = logger or logging.getLogger(__name__)
        self.failures = 0

    def parse(self, lines: Iterable[str]) -> Iterator[StatsRow]:
        """
        Lazily yield classified rows.

        The first record fixes the expected number of fields, like HAProxy's
        own CSV consumers do; the header is a comment and does not count.

        Args:
            lines: Decoded text lines of the stats payload

        Yields:
            StatsRow: Rows with a recognized ``type`` column
        """
        expected_fields: Optional[int] = None

        for line_number, line in enumerate(lines, start=1):
            text = line.rstrip("\r\n")
            if not text.strip() or text.startswith(self.layout.comment_prefix):
                continue

            record = self._decode(text, line_number)
            if record is None:
                continue

            if expected_fields is None:
                expected_fields = len(record)
            elif len(record) != expected_fields:
                self._fail(
                    f"Can't read CSV: line {line_number}: wrong number of fields "
                    f"(expected {expected_fields}, got {len(record)})"
                )
                continue

            if len(record) < self.layout.minimum_field_count:
                self._fail(
                    "Parser received unexpected number of CSV fields "
                    f"(min {self.layout.minimum_field_count}, received {len(record)})"
                )
                continue

            category = self._classify(record)
            if category is not None:
                yield StatsRow(record, category, self.layout)

    def _decode(self, text: str, line_number: int) -> Optional[List[str]]:
        try:
            return next(csv.reader([text], delimiter=self.layout.delimiter, strict=True))
        except csv.Error as e:
            self._fail(f"Can't read CSV: line {line_number}: {e}")
            return None

    def _classify(self, record: List[str]) -> Optional[RowCategory]:
        raw_type = record[self.layout.type_field]
        try:
            return RowCategory(raw_type)
        except ValueError:
            self.logger.debug(f"Ignoring row with unknown type {raw_type!r}")
            return None

    def _fail(self, message: str) -> None:
        self.failures += 1
        self.logger.error(message)
