"""
Lunch Domain Models (``meal_modules.lunch.models``).

Responsibility
--------------
Frozen dataclass value objects for lunch subscriptions: the subscription
and its daily orders, the creation request, edit patches, and the result
objects returned by ``LunchSubscriptionService``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Wire dates are local ``YYYY-MM-DD`` calendar dates.

Failure modes
-------------
* Malformed requests raise ``ValidationError`` subclasses on construction,
  before any eligibility rule runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from meal_engines.lifecycle import FreezeQuota, OrderStatus, SubscriptionStatus
from meal_engines.schedule_types import Recurrence
from meal_kernel.domain.dates import format_wire_date, parse_wire_date
from meal_kernel.exceptions import EmptyTargetError, InvalidDateRangeError, InvalidPatchError
from meal_modules._bulk import BulkItemError, BulkOutcome, unique_ids


@dataclass(frozen=True)
class LunchSubscription:
    """A recurring lunch-combo benefit of one employee."""

    id: UUID
    employee_id: UUID
    combo_type: str
    price: Decimal
    recurrence: Recurrence
    start_date: date
    end_date: date
    status: SubscriptionStatus
    total_days: int
    total_price: Decimal
    company_id: UUID | None = None
    original_end_date: date | None = None
    frozen_days_count: int = 0
    auto_renew: bool = False
    renewed_from_id: UUID | None = None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": str(self.id),
            "employeeId": str(self.employee_id),
            "comboType": self.combo_type,
            "price": str(self.price),
            "startDate": format_wire_date(self.start_date),
            "endDate": format_wire_date(self.end_date),
            "status": self.status.value,
            "totalDays": self.total_days,
            "totalPrice": str(self.total_price),
            "frozenDaysCount": self.frozen_days_count,
            "autoRenew": self.auto_renew,
        }
        payload.update(self.recurrence.to_wire())
        if self.original_end_date is not None:
            payload["originalEndDate"] = format_wire_date(self.original_end_date)
        return payload


@dataclass(frozen=True)
class Order:
    """One billable day. Guest orders have no employee and no subscription."""

    id: UUID
    order_date: date
    combo_type: str
    price: Decimal
    status: OrderStatus
    subscription_id: UUID | None = None
    employee_id: UUID | None = None
    company_id: UUID | None = None
    frozen_at: datetime | None = None
    freeze_reason: str | None = None
    replacement_order_id: UUID | None = None

    @property
    def is_guest(self) -> bool:
        return self.employee_id is None


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class LunchSubscriptionRequest:
    """
    Administrator request to create lunch subscriptions.

    A single employee is a one-element ``employee_ids``.  CUSTOM requests
    may omit the period; it is then taken from the first and last explicit
    date.  ``end_date`` may be omitted for other recurrences and defaults
    to ``default_subscription_months`` after the start.
    """

    employee_ids: tuple[UUID, ...]
    combo_type: str
    recurrence: Recurrence = field(default_factory=Recurrence.every_day)
    start_date: date | None = None
    end_date: date | None = None
    auto_renew: bool = False
    company_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "employee_ids", unique_ids(self.employee_ids))
        if not self.employee_ids:
            raise EmptyTargetError()
        if self.recurrence.kind.is_custom:
            if self.start_date is None:
                object.__setattr__(self, "start_date", self.recurrence.custom_dates[0])
            if self.end_date is None:
                object.__setattr__(self, "end_date", self.recurrence.custom_dates[-1])
        if self.start_date is None:
            raise InvalidDateRangeError(None, self.end_date, "start date is required")
        if self.end_date is not None and self.start_date > self.end_date:
            raise InvalidDateRangeError(self.start_date, self.end_date, "start is after end")

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> LunchSubscriptionRequest:
        """Build from the portal's camelCase request body."""
        ids = payload.get("employeeIds")
        if ids is None and payload.get("employeeId") is not None:
            ids = [payload["employeeId"]]
        start = payload.get("startDate")
        end = payload.get("endDate")
        return cls(
            employee_ids=tuple(UUID(str(i)) for i in ids or ()),
            combo_type=payload.get("comboType", ""),
            recurrence=Recurrence.from_wire(payload.get("scheduleType"), payload.get("customDays")),
            start_date=parse_wire_date(start) if start else None,
            end_date=parse_wire_date(end) if end else None,
            auto_renew=bool(payload.get("autoRenew", False)),
            company_id=UUID(str(payload["companyId"])) if payload.get("companyId") else None,
        )


@dataclass(frozen=True)
class SubscriptionPatch:
    """Fields an administrator may change on an existing subscription."""

    combo_type: str | None = None
    recurrence: Recurrence | None = None
    custom_dates: tuple[date, ...] | None = None
    auto_renew: bool | None = None

    def __post_init__(self) -> None:
        if self.custom_dates is not None:
            if self.recurrence is not None and not self.recurrence.kind.is_custom:
                raise InvalidPatchError(
                    "custom_dates", "explicit dates require a CUSTOM recurrence"
                )
            object.__setattr__(self, "recurrence", Recurrence.custom(self.custom_dates))
        if self.combo_type is not None and not self.combo_type.strip():
            raise InvalidPatchError("combo_type", "must not be empty")

    @property
    def is_empty(self) -> bool:
        return self.combo_type is None and self.recurrence is None and self.auto_renew is None


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class BulkCreateResult:
    """Per-employee outcome of ``create_subscriptions``."""

    created: tuple[LunchSubscription, ...]
    errors: tuple[BulkItemError, ...]
    requested: int

    @classmethod
    def from_outcome(cls, outcome: BulkOutcome[LunchSubscription]) -> BulkCreateResult:
        return cls(created=outcome.succeeded, errors=outcome.errors, requested=outcome.requested)

    @property
    def total_price(self) -> Decimal:
        return sum((s.total_price for s in self.created), Decimal("0"))

    @property
    def summary(self) -> str:
        return BulkOutcome(self.created, self.errors, self.requested).summary


@dataclass(frozen=True)
class CancelResult:
    subscription: LunchSubscription
    refund_amount: Decimal
    cancelled_order_count: int


@dataclass(frozen=True)
class FreezeResult:
    order: Order
    subscription: LunchSubscription
    replacement_order: Order
    quota: FreezeQuota


@dataclass(frozen=True)
class UnfreezeResult:
    order: Order
    subscription: LunchSubscription


@dataclass(frozen=True)
class SkippedOrder:
    order_id: UUID
    order_date: date
    reason_code: str


@dataclass(frozen=True)
class FreezePeriodResult:
    """Orders frozen by ``freeze_period`` and those it had to skip."""

    frozen: tuple[Order, ...]
    skipped: tuple[SkippedOrder, ...]
    quota: FreezeQuota
    end_date: date | None = None


@dataclass(frozen=True)
class UpdateResult:
    """Updated subscription and the change in cost of its future orders."""

    subscription: LunchSubscription
    price_delta: Decimal
    regenerated_order_count: int


@dataclass(frozen=True)
class SettlementCharge:
    """
    Amount owed for one employee's (or one company's guest) orders of a day.

    Handed to the budget-ledger collaborator; this package does not post it.
    """

    day: date
    order_count: int
    amount: Decimal
    order_ids: tuple[UUID, ...] = ()
    company_id: UUID | None = None
    employee_id: UUID | None = None
