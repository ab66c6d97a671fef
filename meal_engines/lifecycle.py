"""
Lifecycle State Machine Engine.

Pure functions with deterministic behavior. No I/O.

Subscription states::

    Draft -> Active -> Paused -> Active      (pause / resume)
             Active -> Cancelled             (terminal, refunds future orders)
             Active -> Completed             (terminal, period ended)
             Paused -> Cancelled

Order states::

    Active -> Frozen            (single-day freeze; extends the subscription)
    Frozen -> Active            (unfreeze; shrinks the subscription back)
    Active <-> Paused           (follows the subscription)
    Active -> Completed         (daily settlement)
    Active|Paused|Frozen -> Cancelled

A freeze keeps the number of contracted days: the frozen day moves to the
next qualifying date after the current end.  Freezes are limited per
employee per Monday..Sunday week.

Consumed history is immutable: orders dated before today, and orders in a
terminal state, never change.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum

from meal_config.schema import BusinessConfig
from meal_engines.calendar import WorkingDayCalendar
from meal_engines.schedule_types import Recurrence
from meal_kernel.domain.dates import week_window
from meal_kernel.exceptions import (
    FreezeQuotaExceededError,
    InvalidTransitionError,
    OrderNotModifiableError,
)


# ============================================================================
# States
# ============================================================================


class SubscriptionStatus(str, Enum):
    """Lifecycle state of a lunch subscription or compensation benefit."""

    DRAFT = "Draft"
    ACTIVE = "Active"
    PAUSED = "Paused"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"

    @property
    def is_open(self) -> bool:
        """Counts as the employee's current benefit."""
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED)


class OrderStatus(str, Enum):
    """State of a single billable day."""

    ACTIVE = "Active"
    PAUSED = "Paused"
    FROZEN = "Frozen"
    DAY_OFF = "DayOff"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def can_modify(self) -> bool:
        return self in (OrderStatus.ACTIVE, OrderStatus.PAUSED, OrderStatus.FROZEN)

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    @property
    def is_billable(self) -> bool:
        """Still expected to be delivered and charged."""
        return self in (OrderStatus.ACTIVE, OrderStatus.PAUSED)


class StateMachine:
    """Transition table with checked transitions."""

    def __init__(self, name: str, transitions: dict[Enum, frozenset[Enum]]):
        self.name = name
        self._transitions = transitions

    def allowed_transitions(self, status: Enum) -> frozenset[Enum]:
        return self._transitions.get(status, frozenset())

    def can_transition(self, from_status: Enum, to_status: Enum) -> bool:
        return to_status in self.allowed_transitions(from_status)

    def is_terminal(self, status: Enum) -> bool:
        return not self.allowed_transitions(status)

    def transition(self, from_status: Enum, to_status: Enum) -> Enum:
        """
        Return ``to_status`` if the move is allowed.

        Raises:
            InvalidTransitionError: otherwise.
        """
        if not self.can_transition(from_status, to_status):
            raise InvalidTransitionError(self.name, from_status.value, to_status.value)
        return to_status


SUBSCRIPTION_MACHINE = StateMachine(
    "subscription",
    {
        SubscriptionStatus.DRAFT: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}),
        SubscriptionStatus.ACTIVE: frozenset({
            SubscriptionStatus.PAUSED,
            SubscriptionStatus.CANCELLED,
            SubscriptionStatus.COMPLETED,
        }),
        SubscriptionStatus.PAUSED: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}),
    },
)

ORDER_MACHINE = StateMachine(
    "order",
    {
        OrderStatus.ACTIVE: frozenset({
            OrderStatus.PAUSED,
            OrderStatus.FROZEN,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
        }),
        OrderStatus.PAUSED: frozenset({OrderStatus.ACTIVE, OrderStatus.CANCELLED}),
        OrderStatus.FROZEN: frozenset({OrderStatus.ACTIVE, OrderStatus.CANCELLED}),
        OrderStatus.DAY_OFF: frozenset({OrderStatus.ACTIVE}),
    },
)


# ============================================================================
# Freeze quota
# ============================================================================


@dataclass(frozen=True)
class FreezeQuota:
    """Weekly freeze usage of one employee."""

    used: int
    limit: int
    week_start: date
    week_end: date

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def can_freeze(self) -> bool:
        return self.remaining > 0


def freeze_quota(
    frozen_on: Iterable[date],
    today: date,
    config: BusinessConfig | None = None,
) -> FreezeQuota:
    """
    Quota for the week containing ``today``.

    ``frozen_on`` are the local dates on which the employee's orders were
    frozen; only those inside the Monday..Sunday window count.
    """
    cfg = config or BusinessConfig()
    week_start, week_end = week_window(today)
    used = sum(1 for d in frozen_on if week_start <= d <= week_end)
    return FreezeQuota(
        used=used,
        limit=cfg.max_freezes_per_week,
        week_start=week_start,
        week_end=week_end,
    )


def ensure_freeze_available(quota: FreezeQuota, employee_id: str) -> None:
    """
    Raises:
        FreezeQuotaExceededError: when no freeze is left this week.
    """
    if not quota.can_freeze:
        raise FreezeQuotaExceededError(
            employee_id=employee_id,
            used=quota.used,
            limit=quota.limit,
            week_start=quota.week_start,
            week_end=quota.week_end,
        )


# ============================================================================
# Order guards
# ============================================================================


def ensure_order_open(order_id: str, status: OrderStatus, order_date: date, today: date) -> None:
    """
    Past and terminal orders are history and cannot change.

    Raises:
        OrderNotModifiableError
    """
    if order_date < today:
        raise OrderNotModifiableError(order_id, status.value, order_date, "order is in the past")
    if not status.can_modify:
        raise OrderNotModifiableError(order_id, status.value, order_date, "order is closed")


def ensure_can_freeze(order_id: str, status: OrderStatus, order_date: date, today: date) -> None:
    ensure_order_open(order_id, status, order_date, today)
    if status is not OrderStatus.ACTIVE:
        raise OrderNotModifiableError(order_id, status.value, order_date, "only active orders can be frozen")


def ensure_can_unfreeze(order_id: str, status: OrderStatus, order_date: date, today: date) -> None:
    ensure_order_open(order_id, status, order_date, today)
    if status is not OrderStatus.FROZEN:
        raise OrderNotModifiableError(order_id, status.value, order_date, "order is not frozen")


# ============================================================================
# End-date shifting
# ============================================================================


def extended_end_date(
    end_date: date,
    recurrence: Recurrence,
    calendar: WorkingDayCalendar,
) -> date:
    """End date after one freeze: the next qualifying date after ``end_date``."""
    return calendar.next_qualifying_date(end_date, recurrence)
