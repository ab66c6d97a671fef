"""
Recurrence Policy Engine.

Pure functions with deterministic behavior. No I/O.

Expands a recurrence over an employee's working-day calendar into the exact
set of billable dates.  This set is what gets materialized as Order rows;
every caller (individual create, bulk create, edit, renewal) expands through
``expand`` so the day count shown to the administrator, the day count used
for pricing and the orders written to storage can never drift apart.

CUSTOM dates that do not fall on one of the employee's working weekdays are
dropped for that employee.  Two employees with different calendars can
therefore receive different day counts from the same CUSTOM request.

Usage:
    from meal_engines.recurrence import expand

    dates = expand(
        recurrence=Recurrence.every_other_day(),
        working_days={1, 2, 3, 4, 5},
        start=date(2024, 1, 1),
        end=date(2024, 1, 5),
    )
    # (date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5))
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from meal_config.schema import BusinessConfig
from meal_engines.calendar import WorkingDayCalendar
from meal_engines.schedule_types import Recurrence, RecurrenceKind
from meal_engines.tracer import traced_engine
from meal_kernel.exceptions import InvalidDateRangeError
from meal_kernel.logging_config import get_logger

logger = get_logger("engines.recurrence")


@dataclass(frozen=True)
class Expansion:
    """Result of expanding a recurrence, with the CUSTOM dates it dropped."""

    dates: tuple[date, ...]
    dropped: tuple[date, ...] = ()

    @property
    def day_count(self) -> int:
        return len(self.dates)


@traced_engine("recurrence", "1.0", fingerprint_fields=("recurrence", "working_days", "start", "end"))
def expand(
    recurrence: Recurrence,
    working_days: Iterable[int] | None,
    start: date,
    end: date,
    config: BusinessConfig | None = None,
) -> tuple[date, ...]:
    """
    Sorted billable dates of ``recurrence`` in [start, end].

    Idempotent: the same inputs always produce the same tuple, and its
    length equals ``count_qualifying_days`` for the same inputs.
    """
    return explain_expansion(recurrence, working_days, start, end, config).dates


def explain_expansion(
    recurrence: Recurrence,
    working_days: Iterable[int] | None,
    start: date,
    end: date,
    config: BusinessConfig | None = None,
) -> Expansion:
    """Like ``expand`` but also reports CUSTOM dates outside the calendar."""
    cal = WorkingDayCalendar.for_employee(working_days, config)
    dates = tuple(cal.qualifying_dates(recurrence, start, end))
    dropped: tuple[date, ...] = ()
    if recurrence.kind is RecurrenceKind.CUSTOM:
        dropped = tuple(
            d for d in recurrence.custom_dates
            if start <= d <= end and not cal.is_working_day(d)
        )
        if dropped:
            logger.debug(
                "custom_dates_dropped",
                extra={
                    "dropped": [d.isoformat() for d in dropped],
                    "working_days": sorted(cal.days),
                },
            )
    return Expansion(dates=dates, dropped=dropped)


def custom_range(recurrence: Recurrence) -> tuple[date, date]:
    """
    Period spanned by a CUSTOM recurrence (first and last explicit date).

    Raises:
        InvalidDateRangeError: for non-custom recurrences.
    """
    if not recurrence.kind.is_custom:
        raise InvalidDateRangeError(None, None, "only CUSTOM recurrences carry their own range")
    return recurrence.custom_dates[0], recurrence.custom_dates[-1]


def extend_to_day_count(
    recurrence: Recurrence,
    working_days: Iterable[int] | None,
    start: date,
    day_count: int,
    config: BusinessConfig | None = None,
) -> tuple[date, ...]:
    """
    The first ``day_count`` qualifying dates on or after ``start``.

    Used for renewals: the successor subscription keeps the contracted
    number of days rather than the calendar length.  CUSTOM recurrences
    are not renewable this way and yield an empty tuple.
    """
    if day_count <= 0 or recurrence.kind.is_custom:
        return ()
    cal = WorkingDayCalendar.for_employee(working_days, config)
    current = start
    if not cal.qualifies(current, recurrence):
        current = cal.next_qualifying_date(current, recurrence)
    dates = [current]
    while len(dates) < day_count:
        current = cal.next_qualifying_date(current, recurrence)
        dates.append(current)
    return tuple(dates)
