"""
Working-Day Calendar Engine.

Pure functions with deterministic behavior. No I/O.

Resolves an employee's effective set of working weekdays and answers
date-level questions against it: is this a working day, does this date
qualify under a recurrence, how many qualifying dates fall in a range,
which is the next qualifying date after the current end of a subscription.

Weekdays use the portal convention 0=Sunday .. 6=Saturday.  An employee
without a calendar works the configured default (Monday..Friday); the
resolved calendar is never empty.

Usage:
    from meal_engines.calendar import WorkingDayCalendar, count_qualifying_days

    cal = WorkingDayCalendar.for_employee(employee.working_days, config)
    days = cal.count(Recurrence.every_day(), date(2024, 1, 1), date(2024, 1, 5))
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from meal_config.schema import BusinessConfig
from meal_engines.schedule_types import Recurrence, RecurrenceKind
from meal_kernel.domain.dates import BUSINESS_WEEKDAYS, iter_dates, portal_weekday
from meal_kernel.exceptions import InvalidRecurrenceError, InvalidWorkingDaysError
from meal_kernel.logging_config import get_logger

logger = get_logger("engines.calendar")


# ============================================================================
# Constants
# ============================================================================

_DEFAULT_CONFIG = BusinessConfig()

# A non-empty weekday set always has a member within a week of any date
_SEARCH_HORIZON_DAYS = 7


def _validated(days: Iterable[int]) -> frozenset[int]:
    resolved = frozenset(int(d) for d in days)
    if any(d not in range(7) for d in resolved):
        raise InvalidWorkingDaysError(tuple(sorted(resolved)))
    return resolved


def effective_working_days(
    working_days: Iterable[int] | None,
    config: BusinessConfig | None = None,
) -> frozenset[int]:
    """
    The employee's working weekdays, or the configured default when unset.

    Never returns an empty set.

    Raises:
        InvalidWorkingDaysError: if a weekday is outside 0..6.
    """
    cfg = config or _DEFAULT_CONFIG
    days = _validated(working_days or ())
    if not days:
        return frozenset(cfg.default_working_days)
    return days


# ============================================================================
# Calendar
# ============================================================================


@dataclass(frozen=True)
class WorkingDayCalendar:
    """
    An employee's resolved working-day calendar.

    ``every_other_day`` is the weekday pattern EVERY_OTHER_DAY draws from
    before intersecting with ``days``.
    """

    days: frozenset[int]
    every_other_day: frozenset[int] = frozenset({1, 3, 5})

    def __post_init__(self) -> None:
        if not self.days:
            raise InvalidWorkingDaysError(())
        object.__setattr__(self, "days", _validated(self.days))
        object.__setattr__(self, "every_other_day", _validated(self.every_other_day))

    @classmethod
    def for_employee(
        cls,
        working_days: Iterable[int] | None,
        config: BusinessConfig | None = None,
    ) -> WorkingDayCalendar:
        cfg = config or _DEFAULT_CONFIG
        return cls(
            days=effective_working_days(working_days, cfg),
            every_other_day=frozenset(cfg.every_other_day_weekdays),
        )

    # ------------------------------------------------------------------
    # Weekday-level questions
    # ------------------------------------------------------------------

    @property
    def business_days(self) -> frozenset[int]:
        """Working weekdays that fall Monday..Friday."""
        return self.days & BUSINESS_WEEKDAYS

    @property
    def has_business_day(self) -> bool:
        return bool(self.business_days)

    def weekdays_for(self, kind: RecurrenceKind) -> frozenset[int]:
        """Weekdays on which a non-custom recurrence delivers."""
        if kind is RecurrenceKind.EVERY_OTHER_DAY:
            return self.every_other_day & self.days
        return self.days

    # ------------------------------------------------------------------
    # Date-level questions
    # ------------------------------------------------------------------

    def is_working_day(self, day: date) -> bool:
        return portal_weekday(day) in self.days

    def is_every_other_day(self, day: date) -> bool:
        """Monday/Wednesday/Friday AND a working day."""
        return portal_weekday(day) in (self.every_other_day & self.days)

    def qualifies(self, day: date, recurrence: Recurrence) -> bool:
        """Whether an order should exist on ``day`` under ``recurrence``."""
        if recurrence.kind is RecurrenceKind.CUSTOM:
            return day in recurrence.custom_dates and self.is_working_day(day)
        if recurrence.kind is RecurrenceKind.EVERY_OTHER_DAY:
            return self.is_every_other_day(day)
        return self.is_working_day(day)

    def working_dates(self, start: date, end: date) -> list[date]:
        """Working dates in [start, end]; empty when start > end."""
        return [d for d in iter_dates(start, end) if self.is_working_day(d)]

    def qualifying_dates(self, recurrence: Recurrence, start: date, end: date) -> list[date]:
        """Sorted qualifying dates in [start, end]; empty when start > end."""
        if start > end:
            return []
        if recurrence.kind is RecurrenceKind.CUSTOM:
            return [
                d for d in recurrence.custom_dates
                if start <= d <= end and self.is_working_day(d)
            ]
        return [d for d in iter_dates(start, end) if self.qualifies(d, recurrence)]

    def count(self, recurrence: Recurrence, start: date, end: date) -> int:
        return len(self.qualifying_dates(recurrence, start, end))

    def next_qualifying_date(self, after: date, recurrence: Recurrence) -> date:
        """
        First date strictly after ``after`` that can carry an order.

        CUSTOM subscriptions extend onto the next working day: their
        explicit dates describe the original period, not its extension.

        Raises:
            InvalidRecurrenceError: if the recurrence never delivers on
                this calendar.
        """
        return self._step(after, recurrence, +1)

    def previous_qualifying_date(self, before: date, recurrence: Recurrence) -> date:
        """Last date strictly before ``before`` that can carry an order."""
        return self._step(before, recurrence, -1)

    def _step(self, origin: date, recurrence: Recurrence, direction: int) -> date:
        kind = recurrence.kind
        weekdays = self.days if kind is RecurrenceKind.CUSTOM else self.weekdays_for(kind)
        for offset in range(1, _SEARCH_HORIZON_DAYS + 1):
            candidate = origin + timedelta(days=offset * direction)
            if portal_weekday(candidate) in weekdays:
                return candidate
        raise InvalidRecurrenceError(
            kind.value, f"no qualifying weekday in calendar {sorted(self.days)}"
        )


def count_qualifying_days(
    working_days: Iterable[int] | None,
    recurrence: Recurrence,
    start: date,
    end: date,
    config: BusinessConfig | None = None,
) -> int:
    """
    Number of billable days in [start, end].

    EVERY_DAY counts working days, EVERY_OTHER_DAY counts Mon/Wed/Fri that
    are working days, CUSTOM counts the explicit dates inside the range
    that fall on working days.  Dates outside the calendar are excluded,
    not counted.  Returns 0 when start > end.
    """
    cal = WorkingDayCalendar.for_employee(working_days, config)
    return cal.count(recurrence, start, end)
