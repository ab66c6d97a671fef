"""Tests for local-date helpers and the clock implementations."""

from datetime import date, datetime, timedelta, timezone

import pytest

from meal_kernel.domain.clock import DeterministicClock, FixedClock, SystemClock
from meal_kernel.domain.dates import (
    SATURDAY,
    SUNDAY,
    add_months,
    format_wire_date,
    iter_dates,
    parse_wire_date,
    portal_weekday,
    week_window,
)
from meal_kernel.exceptions import InvalidDateRangeError


class TestPortalWeekday:

    def test_sunday_is_zero(self):
        assert portal_weekday(date(2024, 1, 7)) == SUNDAY

    def test_saturday_is_six(self):
        assert portal_weekday(date(2024, 1, 6)) == SATURDAY

    def test_monday_is_one(self):
        assert portal_weekday(date(2024, 1, 1)) == 1


class TestWireDates:

    def test_parse_plain_date(self):
        assert parse_wire_date("2024-02-29") == date(2024, 2, 29)

    def test_date_passes_through(self):
        assert parse_wire_date(date(2024, 1, 1)) == date(2024, 1, 1)

    @pytest.mark.parametrize("value", [
        "2024-01-01T00:00:00Z",
        "01/02/2024",
        "2024-1-1",
        "",
    ])
    def test_non_dates_rejected(self, value):
        with pytest.raises(InvalidDateRangeError):
            parse_wire_date(value)

    def test_instant_rejected(self):
        with pytest.raises(InvalidDateRangeError, match="instant"):
            parse_wire_date(datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_impossible_date_rejected(self):
        with pytest.raises(InvalidDateRangeError):
            parse_wire_date("2023-02-29")

    def test_format(self):
        assert format_wire_date(date(2024, 3, 5)) == "2024-03-05"


class TestDateArithmetic:

    def test_iter_dates_inclusive(self):
        assert list(iter_dates(date(2024, 1, 1), date(2024, 1, 3))) == [
            date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3),
        ]

    def test_iter_dates_inverted_is_empty(self):
        assert list(iter_dates(date(2024, 1, 3), date(2024, 1, 1))) == []

    def test_week_window_on_sunday(self):
        assert week_window(date(2024, 1, 7)) == (date(2024, 1, 1), date(2024, 1, 7))

    def test_add_months_clamps(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_add_months_crosses_year(self):
        assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)


class TestClocks:

    def test_deterministic_clock_advances(self):
        clock = DeterministicClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
        clock.advance_days(2)
        assert clock.today() == date(2024, 1, 3)
        clock.advance(3600)
        assert clock.now().hour == 10

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_fixed_clock(self):
        instant = datetime(2024, 1, 1, 23, 30, tzinfo=timezone(timedelta(hours=5)))
        clock = FixedClock(instant)
        assert clock.today() == date(2024, 1, 1)
        assert clock.now_utc().hour == 18

    def test_system_clock_zone(self):
        now = SystemClock("Asia/Tashkent").now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(hours=5)
