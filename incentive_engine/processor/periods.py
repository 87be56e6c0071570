"""Reporting-window arithmetic.

Dates are handled as calendar dates (year, month, day).  Strings are split
into their fields rather than parsed as instants, so a window boundary never
drifts by a day because of a timezone offset.
"""

import calendar
import datetime
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import pandas as pd


MONTH_LABELS = (
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_BR_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_local_date(value) -> datetime.date:
    """Parse a calendar date from the formats found in the source sheets.

    Accepts ``date``/``datetime``/``Timestamp`` objects and the strings
    ``YYYY-MM-DD``, ``YYYY-MM-DDTHH:MM:SS...`` (time part ignored) and
    ``DD/MM/YYYY``.

    Raises:
        ValueError: If the value is empty or not a recognised date.
    """
    if isinstance(value, datetime.datetime):  # includes pandas Timestamp/NaT
        if pd.isna(value):
            raise ValueError("Missing date")
        return value.date()
    if isinstance(value, datetime.date):
        return value

    s = "" if value is None else str(value).strip()
    m = _ISO_DATE.match(s)
    if m:
        year, month, day = (int(g) for g in m.groups())
        return datetime.date(year, month, day)
    m = _BR_DATE.match(s)
    if m:
        day, month, year = (int(g) for g in m.groups())
        return datetime.date(year, month, day)
    raise ValueError(f"Unrecognised date: {value!r}")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Window operations
# ---------------------------------------------------------------------------

def day_count(start: datetime.date, end: datetime.date) -> int:
    """Inclusive number of days between *start* and *end*."""
    return (end - start).days + 1


def month_label(date: datetime.date) -> str:
    """Month name used by the goal tables ("Janeiro" ... "Dezembro")."""
    return MONTH_LABELS[date.month - 1]


def is_single_month(start: datetime.date, end: datetime.date) -> bool:
    return (start.year, start.month) == (end.year, end.month)


def shift_month(date: datetime.date, months: int) -> datetime.date:
    """Move *date* by whole calendar months, clamping to the month's last day."""
    index = date.year * 12 + (date.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, min(date.day, last_day))


def previous_period(start: datetime.date,
                    end: datetime.date) -> tuple[datetime.date, datetime.date]:
    """The same window one calendar month earlier."""
    return shift_month(start, -1), shift_month(end, -1)


# ---------------------------------------------------------------------------
# ReportWindow
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReportWindow:
    """Inclusive date range a report is computed for."""
    start: datetime.date
    end: datetime.date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(
                f"Window end {self.end.isoformat()} is before start "
                f"{self.start.isoformat()}"
            )

    @classmethod
    def parse(cls, start, end) -> "ReportWindow":
        return cls(parse_local_date(start), parse_local_date(end))

    @property
    def day_count(self) -> int:
        return day_count(self.start, self.end)

    @property
    def month_label(self) -> str:
        """Label of the month containing ``start``."""
        return month_label(self.start)

    @property
    def is_single_month(self) -> bool:
        return is_single_month(self.start, self.end)

    def contains(self, date: datetime.date) -> bool:
        return self.start <= date <= self.end

    def previous(self) -> "ReportWindow":
        return ReportWindow(*previous_period(self.start, self.end))

    def __str__(self) -> str:
        return f"{self.start:%d/%m/%Y} a {self.end:%d/%m/%Y}"
