"""
Schedule types for lunch subscriptions.

Pure value objects. No I/O.

A recurrence is one of:
- EVERY_DAY        -- every working day of the employee's calendar
- EVERY_OTHER_DAY  -- Monday, Wednesday and Friday, when they are working days
- CUSTOM           -- an explicit list of dates chosen by the administrator

Legacy records carry ``"WEEKDAYS"`` or no schedule type at all; both read as
EVERY_DAY.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from meal_kernel.domain.dates import format_wire_date, parse_wire_date
from meal_kernel.exceptions import InvalidRecurrenceError


class RecurrenceKind(str, Enum):
    """Day-selection pattern of a lunch subscription."""

    EVERY_DAY = "EVERY_DAY"
    EVERY_OTHER_DAY = "EVERY_OTHER_DAY"
    CUSTOM = "CUSTOM"

    @classmethod
    def normalize(cls, value: str | RecurrenceKind | None) -> RecurrenceKind:
        """Map stored or wire values onto a kind; unknown and legacy -> EVERY_DAY."""
        if isinstance(value, RecurrenceKind):
            return value
        if not value:
            return cls.EVERY_DAY
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.EVERY_DAY

    @classmethod
    def is_valid(cls, value: str | None) -> bool:
        return value in cls._value2member_map_

    @property
    def is_custom(self) -> bool:
        return self is RecurrenceKind.CUSTOM


@dataclass(frozen=True)
class Recurrence:
    """
    Recurrence descriptor.

    ``custom_dates`` is sorted and de-duplicated on construction and is
    only allowed (and required) for CUSTOM.
    """

    kind: RecurrenceKind
    custom_dates: tuple[date, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.kind, RecurrenceKind):
            object.__setattr__(self, "kind", RecurrenceKind.normalize(self.kind))
        dates = tuple(sorted(set(self.custom_dates)))
        object.__setattr__(self, "custom_dates", dates)
        if self.kind.is_custom and not dates:
            raise InvalidRecurrenceError(self.kind.value, "CUSTOM requires at least one date")
        if not self.kind.is_custom and dates:
            raise InvalidRecurrenceError(
                self.kind.value, "explicit dates are only allowed for CUSTOM"
            )

    @classmethod
    def every_day(cls) -> Recurrence:
        return cls(RecurrenceKind.EVERY_DAY)

    @classmethod
    def every_other_day(cls) -> Recurrence:
        return cls(RecurrenceKind.EVERY_OTHER_DAY)

    @classmethod
    def custom(cls, dates: Iterable[date]) -> Recurrence:
        return cls(RecurrenceKind.CUSTOM, tuple(dates))

    @classmethod
    def from_wire(
        cls,
        schedule_type: str | None,
        custom_days: Iterable[str | date] | None = None,
    ) -> Recurrence:
        """Build from ``scheduleType`` / ``customDays`` request fields."""
        kind = RecurrenceKind.normalize(schedule_type)
        if kind.is_custom:
            return cls(kind, tuple(parse_wire_date(d) for d in (custom_days or ())))
        return cls(kind)

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"scheduleType": self.kind.value}
        if self.kind.is_custom:
            payload["customDays"] = [format_wire_date(d) for d in self.custom_dates]
        return payload
