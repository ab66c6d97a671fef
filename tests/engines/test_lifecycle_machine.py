"""
Tests for the subscription/order state machines, freeze quota, order
guards, end-date shifting and the daily cutoff.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from meal_config.schema import BusinessConfig
from meal_engines.calendar import WorkingDayCalendar
from meal_engines.cutoff import cutoff_instant, ensure_before_cutoff, is_past_cutoff
from meal_engines.lifecycle import (
    ORDER_MACHINE,
    SUBSCRIPTION_MACHINE,
    OrderStatus,
    SubscriptionStatus,
    ensure_can_freeze,
    ensure_can_unfreeze,
    ensure_freeze_available,
    extended_end_date,
    freeze_quota,
)
from meal_engines.schedule_types import Recurrence
from meal_kernel.exceptions import (
    CutoffPassedError,
    FreezeQuotaExceededError,
    InvalidTransitionError,
    OrderNotModifiableError,
)

MON = date(2024, 1, 1)
WED = date(2024, 1, 3)
FRI = date(2024, 1, 5)
NEXT_MON = date(2024, 1, 8)


class TestSubscriptionMachine:

    def test_pause_and_resume(self):
        assert SUBSCRIPTION_MACHINE.can_transition(SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED)
        assert SUBSCRIPTION_MACHINE.can_transition(SubscriptionStatus.PAUSED, SubscriptionStatus.ACTIVE)

    @pytest.mark.parametrize("status", [SubscriptionStatus.CANCELLED, SubscriptionStatus.COMPLETED])
    def test_terminal_states(self, status):
        assert SUBSCRIPTION_MACHINE.is_terminal(status)

    def test_paused_cannot_complete(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            SUBSCRIPTION_MACHINE.transition(SubscriptionStatus.PAUSED, SubscriptionStatus.COMPLETED)
        assert exc_info.value.machine == "subscription"


class TestOrderMachine:

    def test_frozen_can_be_reactivated(self):
        assert ORDER_MACHINE.transition(OrderStatus.FROZEN, OrderStatus.ACTIVE) is OrderStatus.ACTIVE

    def test_completed_is_terminal(self):
        assert ORDER_MACHINE.allowed_transitions(OrderStatus.COMPLETED) == frozenset()

    def test_paused_cannot_freeze(self):
        assert not ORDER_MACHINE.can_transition(OrderStatus.PAUSED, OrderStatus.FROZEN)

    def test_billable_statuses(self):
        assert {s for s in OrderStatus if s.is_billable} == {OrderStatus.ACTIVE, OrderStatus.PAUSED}


class TestFreezeQuota:

    def test_counts_only_current_week(self):
        quota = freeze_quota([MON - timedelta(days=1), MON, WED], today=FRI)
        assert quota.used == 2
        assert quota.week_start == MON
        assert quota.week_end == date(2024, 1, 7)
        assert not quota.can_freeze

    def test_remaining(self):
        quota = freeze_quota([MON], today=WED, config=BusinessConfig(max_freezes_per_week=3))
        assert quota.remaining == 2

    def test_exhausted_quota_raises_with_diagnostics(self):
        quota = freeze_quota([MON, WED], today=FRI)
        with pytest.raises(FreezeQuotaExceededError) as exc_info:
            ensure_freeze_available(quota, "emp-1")
        assert exc_info.value.remaining == 0
        assert exc_info.value.limit == 2


class TestOrderGuards:

    def test_past_order_cannot_be_frozen(self):
        with pytest.raises(OrderNotModifiableError, match="in the past"):
            ensure_can_freeze("o", OrderStatus.ACTIVE, MON, today=WED)

    def test_only_active_orders_freeze(self):
        with pytest.raises(OrderNotModifiableError):
            ensure_can_freeze("o", OrderStatus.PAUSED, FRI, today=WED)

    def test_only_frozen_orders_unfreeze(self):
        with pytest.raises(OrderNotModifiableError, match="not frozen"):
            ensure_can_unfreeze("o", OrderStatus.ACTIVE, FRI, today=WED)

    def test_closed_order(self):
        with pytest.raises(OrderNotModifiableError, match="closed"):
            ensure_can_unfreeze("o", OrderStatus.COMPLETED, FRI, today=WED)


class TestEndDateShift:

    def setup_method(self):
        self.calendar = WorkingDayCalendar.for_employee({1, 2, 3, 4, 5})

    def test_extend_skips_weekend(self):
        assert extended_end_date(FRI, Recurrence.every_day(), self.calendar) == NEXT_MON


class TestCutoff:

    def test_cutoff_instant_applies_offset(self):
        now = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        config = BusinessConfig(cutoff_offset_hours=2)
        assert cutoff_instant(MON, now, config=config) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_explicit_cutoff_time(self):
        now = datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)
        assert is_past_cutoff(MON, now, cutoff_time="08:15")
        assert not is_past_cutoff(MON, now, cutoff_time=time(9, 0))

    def test_at_cutoff_is_past(self):
        now = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        with pytest.raises(CutoffPassedError) as exc_info:
            ensure_before_cutoff(MON, now)
        assert exc_info.value.cutoff_at.hour == 10

    def test_before_cutoff_passes(self):
        ensure_before_cutoff(MON, datetime(2024, 1, 1, 9, 59, tzinfo=timezone.utc))
