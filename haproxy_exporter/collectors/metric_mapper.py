"""Turn classified stats rows into labeled observations."""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from ..utils.metrics import Observation
from ..utils.status import parse_status_field
from .csv_parser import StatsRow
from .field_registry import FieldSpec, ValueConversion

_INTEGER = re.compile(r"[+-]?[0-9]+")
_FLOAT = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def convert_value(raw: str, conversion: ValueConversion) -> float:
    """
    Convert one CSV cell.

    Raises:
        ValueError: If the cell is not numeric where a number is expected
    """
    if conversion is ValueConversion.STATUS:
        return float(parse_status_field(raw))
    if conversion is ValueConversion.MILLISECONDS_TO_SECONDS:
        if not _FLOAT.fullmatch(raw):
            raise ValueError(f"invalid number: {raw!r}")
        return float(raw) / 1000
    if not _INTEGER.fullmatch(raw):
        raise ValueError(f"invalid integer: {raw!r}")
    return float(int(raw, 10))


class MetricMapper:
    """Maps rows through a field table into observations."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def map(self, row: StatsRow, fields: Iterable[FieldSpec]) -> Tuple[List[Observation], int]:
        """
        Extract every configured column present in the row.

        Empty or missing columns yield nothing. A cell that fails conversion
        is skipped and counted; the rest of the row is still mapped.

        Args:
            row: Classified stats row
            fields: Field specs valid for the row's category

        Returns:
            Tuple of (observations, number of failed conversions)
        """
        observations: List[Observation] = []
        failures = 0
        label_names = row.category.label_names
        label_values = row.label_values()

        for spec in sorted(fields, key=lambda s: s.index):
            if spec.index >= len(row.fields):
                continue
            raw = row.fields[spec.index]
            if raw == "":
                continue

            try:
                value = convert_value(raw, spec.conversion)
            except ValueError as e:
                failures += 1
                self.logger.error(f"Can't parse CSV field value {raw!r}: {e}")
                continue

            observations.append(Observation(
                name=spec.full_name(row.category),
                documentation=spec.documentation,
                kind=spec.kind,
                label_names=label_names + spec.const_label_names,
                label_values=label_values + spec.const_label_values,
                value=value,
            ))

        return observations, failures
