"""
Local calendar-date helpers.

Dates exchanged with the portal are local calendar dates in ``YYYY-MM-DD``
form.  They are never converted through UTC instants: a date parsed here
is the date the administrator picked.

Weekdays follow the portal convention 0=Sunday .. 6=Saturday, which
differs from ``date.weekday()`` (0=Monday).
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterator
from datetime import date, datetime, timedelta

from meal_kernel.exceptions import InvalidDateRangeError

_WIRE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SUNDAY = 0
MONDAY = 1
TUESDAY = 2
WEDNESDAY = 3
THURSDAY = 4
FRIDAY = 5
SATURDAY = 6

ALL_WEEKDAYS = frozenset(range(7))
BUSINESS_WEEKDAYS = frozenset({MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY})


def portal_weekday(day: date) -> int:
    """Weekday of ``day`` with 0=Sunday."""
    return (day.weekday() + 1) % 7


def parse_wire_date(value: str | date) -> date:
    """
    Parse a ``YYYY-MM-DD`` wire date.

    Instants (``2024-01-01T00:00:00Z``) are rejected rather than truncated,
    since truncating a UTC instant is how a date slips by one day.

    Raises:
        InvalidDateRangeError: if the value is not a plain calendar date.
    """
    if isinstance(value, datetime):
        raise InvalidDateRangeError(None, None, f"expected a date, got instant {value!r}")
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _WIRE_DATE.match(value):
        raise InvalidDateRangeError(None, None, f"expected YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidDateRangeError(None, None, str(exc)) from None


def format_wire_date(day: date) -> str:
    """Format a local date as ``YYYY-MM-DD``."""
    return day.strftime("%Y-%m-%d")


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date in [start, end]; nothing when start > end."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def week_window(day: date) -> tuple[date, date]:
    """Monday..Sunday week containing ``day`` (Sunday closes the week)."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def add_months(day: date, months: int) -> date:
    """Same day ``months`` later, clamped to the target month's length."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))
