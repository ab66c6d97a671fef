"""
Compensation Budget Engine.

Pure functions with deterministic behavior. No I/O.

A compensation is a cash-like daily allowance with an overall budget:

- ``effective_limit = daily_limit + accumulated_balance`` (carry-over only)
- a purchase is split into the company share, capped by what is left of
  the effective limit today, and the employee share for the rest
- company spend beyond the plain daily limit is drawn from the
  accumulated balance
- when a day is closed, unused daily allowance rolls into the balance if
  carry-over is enabled
- total company spend may not exceed the budget unless overdraft is allowed

Compensation is always daily, so its day count is EVERY_DAY over the
employee's working-day calendar.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from meal_config.schema import BusinessConfig
from meal_engines.calendar import count_qualifying_days
from meal_engines.schedule_types import Recurrence
from meal_kernel.exceptions import BudgetExceededError, InvalidPatchError, NonPositiveRateError

_TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0")


def _money(amount: Decimal | int | str) -> Decimal:
    return Decimal(str(amount)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


# ============================================================================
# Value Objects
# ============================================================================


@dataclass(frozen=True)
class TransactionSplit:
    """How one purchase is shared between company and employee."""

    amount: Decimal
    company_pays: Decimal
    employee_pays: Decimal
    drawn_from_balance: Decimal

    def __post_init__(self) -> None:
        if self.company_pays + self.employee_pays != self.amount:
            raise ValueError(
                f"Split does not add up: {self.company_pays} + "
                f"{self.employee_pays} != {self.amount}"
            )


# ============================================================================
# Day counts
# ============================================================================


def compensation_days(
    working_days: Iterable[int] | None,
    start: date,
    end: date,
    config: BusinessConfig | None = None,
) -> int:
    """Working days in [start, end] on the employee's calendar."""
    return count_qualifying_days(working_days, Recurrence.every_day(), start, end, config)


# ============================================================================
# Spending
# ============================================================================


def effective_daily_limit(
    daily_limit: Decimal,
    accumulated_balance: Decimal,
    carry_over: bool,
) -> Decimal:
    if carry_over:
        return _money(Decimal(daily_limit) + max(_ZERO, Decimal(accumulated_balance)))
    return _money(daily_limit)


def split_transaction(
    amount: Decimal,
    daily_limit: Decimal,
    used_on_day: Decimal,
    accumulated_balance: Decimal = _ZERO,
    carry_over: bool = False,
) -> TransactionSplit:
    """
    Split ``amount`` given what the company already paid today.

    Raises:
        NonPositiveRateError: if ``amount`` <= 0.
    """
    amount = _money(amount)
    if amount <= 0:
        raise NonPositiveRateError("amount", amount)

    used = _money(used_on_day)
    limit = effective_daily_limit(daily_limit, accumulated_balance, carry_over)
    available = max(_ZERO, limit - used)
    company = min(amount, available)

    daily_remaining = max(_ZERO, _money(daily_limit) - used)
    drawn = max(_ZERO, company - daily_remaining) if carry_over else _ZERO

    return TransactionSplit(
        amount=amount,
        company_pays=company,
        employee_pays=amount - company,
        drawn_from_balance=drawn,
    )


def ensure_within_budget(
    compensation_id: str,
    total_budget: Decimal,
    used_amount: Decimal,
    company_pays: Decimal,
    allow_overdraft: bool,
) -> None:
    """
    Raises:
        BudgetExceededError: company spend would pass the budget and
            overdraft is not allowed.
    """
    if allow_overdraft:
        return
    remaining = unspent_budget(total_budget, used_amount)
    if company_pays > remaining:
        raise BudgetExceededError(compensation_id, _money(company_pays), remaining)


def close_day(
    daily_limit: Decimal,
    company_paid_on_day: Decimal,
    accumulated_balance: Decimal,
    carry_over: bool,
) -> Decimal:
    """
    Balance after the day is closed.

    Without carry-over the balance is left untouched.  Spend above the
    daily limit was already drawn from the balance when it happened.
    """
    balance = _money(accumulated_balance)
    if not carry_over:
        return balance
    unused = max(_ZERO, _money(daily_limit) - _money(company_paid_on_day))
    return balance + unused


# ============================================================================
# Budget
# ============================================================================


def unspent_budget(total_budget: Decimal, used_amount: Decimal) -> Decimal:
    """Remaining budget, never negative. Also the refund on cancellation."""
    return max(_ZERO, _money(total_budget) - _money(used_amount))


def validate_budget_change(new_total_budget: Decimal, used_amount: Decimal) -> Decimal:
    """
    Raises:
        InvalidPatchError: budget would drop below what is already spent.
    """
    budget = _money(new_total_budget)
    if budget <= 0:
        raise NonPositiveRateError("total_budget", budget)
    if budget < _money(used_amount):
        raise InvalidPatchError(
            "total_budget", f"{budget} is below the amount already spent ({_money(used_amount)})"
        )
    return budget
