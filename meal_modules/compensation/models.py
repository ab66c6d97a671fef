"""
Compensation Domain Models (``meal_modules.compensation.models``).

Responsibility
--------------
Frozen dataclass value objects for compensation benefits: the budget
itself, spending transactions, creation requests, patches and results.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from meal_engines.lifecycle import SubscriptionStatus
from meal_kernel.domain.dates import parse_wire_date
from meal_kernel.exceptions import (
    EmptyTargetError,
    InvalidDateRangeError,
    InvalidPatchError,
    NonPositiveRateError,
)
from meal_modules._bulk import BulkItemError, BulkOutcome, unique_ids


@dataclass(frozen=True)
class Compensation:
    """A daily allowance with an overall budget for one employee."""

    id: UUID
    employee_id: UUID
    daily_limit: Decimal
    total_budget: Decimal
    start_date: date
    end_date: date
    status: SubscriptionStatus
    total_days: int
    used_amount: Decimal = Decimal("0")
    accumulated_balance: Decimal = Decimal("0")
    carry_over: bool = False
    auto_renew: bool = False
    company_id: UUID | None = None
    last_closed_date: date | None = None
    renewed_from_id: UUID | None = None

    @property
    def remaining_budget(self) -> Decimal:
        return max(Decimal("0"), self.total_budget - self.used_amount)


@dataclass(frozen=True)
class CompensationTransaction:
    """One purchase charged against a compensation."""

    id: UUID
    compensation_id: UUID
    transaction_date: date
    amount: Decimal
    company_pays: Decimal
    employee_pays: Decimal
    drawn_from_balance: Decimal = Decimal("0")
    description: str | None = None


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class CompensationRequest:
    """
    Administrator request to create compensations.

    ``total_budget`` of None means "days x daily_limit", computed per
    employee over that employee's own working days.
    """

    employee_ids: tuple[UUID, ...]
    daily_limit: Decimal
    start_date: date
    end_date: date | None = None
    total_budget: Decimal | None = None
    carry_over: bool = False
    auto_renew: bool = False
    company_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "employee_ids", unique_ids(self.employee_ids))
        if not self.employee_ids:
            raise EmptyTargetError()
        if Decimal(self.daily_limit) <= 0:
            raise NonPositiveRateError("daily_limit", Decimal(self.daily_limit))
        if self.total_budget is not None and Decimal(self.total_budget) <= 0:
            raise NonPositiveRateError("total_budget", Decimal(self.total_budget))
        if self.end_date is not None and self.start_date > self.end_date:
            raise InvalidDateRangeError(self.start_date, self.end_date, "start is after end")

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> CompensationRequest:
        ids = payload.get("employeeIds")
        if ids is None and payload.get("employeeId") is not None:
            ids = [payload["employeeId"]]
        start = payload.get("startDate")
        if not start:
            raise InvalidDateRangeError(None, None, "start date is required")
        end = payload.get("endDate")
        budget = payload.get("totalBudget")
        return cls(
            employee_ids=tuple(UUID(str(i)) for i in ids or ()),
            daily_limit=Decimal(str(payload.get("dailyLimit", "0"))),
            start_date=parse_wire_date(start),
            end_date=parse_wire_date(end) if end else None,
            total_budget=Decimal(str(budget)) if budget is not None else None,
            carry_over=bool(payload.get("carryOver", False)),
            auto_renew=bool(payload.get("autoRenew", False)),
            company_id=UUID(str(payload["companyId"])) if payload.get("companyId") else None,
        )


@dataclass(frozen=True)
class CompensationPatch:
    daily_limit: Decimal | None = None
    total_budget: Decimal | None = None
    carry_over: bool | None = None
    auto_renew: bool | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        if self.daily_limit is not None and Decimal(self.daily_limit) <= 0:
            raise NonPositiveRateError("daily_limit", Decimal(self.daily_limit))
        if all(
            value is None
            for value in (self.daily_limit, self.total_budget, self.carry_over, self.auto_renew, self.end_date)
        ):
            raise InvalidPatchError("patch", "no field to change")


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class BulkCompensationResult:
    """Per-employee outcome of ``create_compensations``."""

    created: tuple[Compensation, ...]
    errors: tuple[BulkItemError, ...]
    requested: int

    @classmethod
    def from_outcome(cls, outcome: BulkOutcome[Compensation]) -> BulkCompensationResult:
        return cls(created=outcome.succeeded, errors=outcome.errors, requested=outcome.requested)

    @property
    def total_budget(self) -> Decimal:
        """Sum of each created budget (each sized on its own day count)."""
        return sum((c.total_budget for c in self.created), Decimal("0"))

    @property
    def summary(self) -> str:
        return BulkOutcome(self.created, self.errors, self.requested).summary


@dataclass(frozen=True)
class CompensationCancelResult:
    compensation: Compensation
    refund_amount: Decimal


@dataclass(frozen=True)
class TransactionResult:
    compensation: Compensation
    transaction: CompensationTransaction
