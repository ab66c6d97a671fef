"""
Pure domain layer.

Time and calendar primitives shared by engines and services, with NO
dependency on the ORM or the database.
"""

from meal_kernel.domain.clock import Clock, DeterministicClock, FixedClock, SystemClock
from meal_kernel.domain.dates import (
    ALL_WEEKDAYS,
    BUSINESS_WEEKDAYS,
    add_months,
    format_wire_date,
    iter_dates,
    parse_wire_date,
    portal_weekday,
    week_window,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "FixedClock",
    "SystemClock",
    "ALL_WEEKDAYS",
    "BUSINESS_WEEKDAYS",
    "add_months",
    "format_wire_date",
    "iter_dates",
    "parse_wire_date",
    "portal_weekday",
    "week_window",
]
