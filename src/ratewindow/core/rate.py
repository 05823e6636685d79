import re
from dataclasses import dataclass
from enum import StrEnum

from ratewindow.core.errors import InvalidRate


class PeriodUnit(StrEnum):
    SECOND = "S"
    MINUTE = "M"
    HOUR = "H"
    DAY = "D"


UNIT_SECONDS = {
    PeriodUnit.SECOND: 1,
    PeriodUnit.MINUTE: 60,
    PeriodUnit.HOUR: 60 * 60,
    PeriodUnit.DAY: 24 * 60 * 60,
}

_FORMATTED_RE = re.compile(r"^\s*(\d+)\s*-\s*([SMHD])\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class Rate:
    """
    A fixed-window quota: at most `limit` requests every `period` seconds.
    """

    limit: int
    period: int

    def __post_init__(self) -> None:
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
            raise InvalidRate(f"limit must be a positive integer, got {self.limit!r}")
        if isinstance(self.period, bool) or not isinstance(self.period, int) or self.period < 1:
            raise InvalidRate(f"period must be at least 1 second, got {self.period!r}")

    @classmethod
    def from_formatted(cls, value: str) -> "Rate":
        """
        Parses "<limit>-<unit>" such as "5-S", "100-M", "1000-H" or "20000-D".
        """
        match = _FORMATTED_RE.match(value or "")
        if match is None:
            raise InvalidRate(f"incorrect rate format {value!r}, expected <limit>-<S|M|H|D>")

        limit, unit = match.groups()
        return cls(limit=int(limit), period=UNIT_SECONDS[PeriodUnit(unit.upper())])

    @property
    def formatted(self) -> str:
        """
        Canonical "<limit>-<unit>" form. Periods that are not exactly one
        unit render as "<limit>/<period>s", which is for display only:
        `from_formatted` does not accept it.
        """
        for unit, seconds in UNIT_SECONDS.items():
            if self.period == seconds:
                return f"{self.limit}-{unit}"
        return f"{self.limit}/{self.period}s"
