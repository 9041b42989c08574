"""HAProxy status field translation."""

import re
from enum import Enum


class ServerStatus(Enum):
    """Operational state reported in the HAProxy ``status`` column."""

    UP = 1
    DOWN = 0

    @classmethod
    def from_field(cls, value: str) -> "ServerStatus":
        """
        Translate a raw status token into an operational state.

        Tokens are matched exactly as HAProxy writes them. Transitional
        states carry a check counter suffix ("UP 1/3"), which still counts
        as UP. Anything else, surrounding whitespace included, is DOWN and
        never raises.

        Args:
            value: Raw ``status`` column value

        Returns:
            ServerStatus: UP for operational tokens, DOWN otherwise
        """
        if value in _UP_TOKENS or _UP_WITH_COUNTER.fullmatch(value):
            return cls.UP
        return cls.DOWN

    def to_value(self) -> int:
        """Return the gauge value (1 = UP, 0 = DOWN)."""
        return self.value


# "no check" means health checks are disabled; HAProxy still routes to it.
_UP_TOKENS = frozenset({"UP", "OPEN", "no check"})
_UP_WITH_COUNTER = re.compile(r"UP [0-9]+/[0-9]+")


def parse_status_field(value: str) -> int:
    """Map a status token to 1 (operational) or 0 (anything else)."""
    return ServerStatus.from_field(value).to_value()
