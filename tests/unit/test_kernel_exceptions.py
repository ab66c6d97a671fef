"""Tests for the typed exception hierarchy."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from meal_kernel import exceptions as exc_module
from meal_kernel.exceptions import (
    BudgetExceededError,
    CutoffPassedError,
    FreezeQuotaExceededError,
    MealKernelError,
    NotFoundError,
    OrderNotModifiableError,
    StateConflictError,
    SubscriptionNotFoundError,
    ValidationError,
)


def _concrete_errors():
    return [
        obj for obj in vars(exc_module).values()
        if isinstance(obj, type) and issubclass(obj, MealKernelError)
    ]


class TestHierarchy:

    def test_every_error_has_a_code(self):
        for cls in _concrete_errors():
            assert cls.code, cls.__name__

    def test_codes_are_unique(self):
        codes = [cls.code for cls in _concrete_errors()]
        assert len(codes) == len(set(codes))

    def test_validation_errors_are_value_errors(self):
        assert issubclass(ValidationError, ValueError)

    def test_not_found_family(self):
        err = SubscriptionNotFoundError("abc")
        assert isinstance(err, NotFoundError)
        assert err.subscription_id == "abc"


class TestStructuredFields:

    def test_freeze_quota_remaining(self):
        err = FreezeQuotaExceededError(
            employee_id="e",
            used=3,
            limit=2,
            week_start=date(2024, 1, 1),
            week_end=date(2024, 1, 7),
        )
        assert err.remaining == 0
        assert err.code == "FREEZE_QUOTA_EXCEEDED"
        assert isinstance(err, StateConflictError)

    def test_cutoff_passed(self):
        at = datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
        err = CutoffPassedError(order_date=date(2024, 1, 1), cutoff_at=at, now=at)
        assert err.cutoff_at == at

    def test_order_not_modifiable_message(self):
        err = OrderNotModifiableError("o-1", "Completed", date(2024, 1, 1), "order is closed")
        assert "order is closed" in str(err)
        assert err.reason_code == "ORDER_NOT_MODIFIABLE"

    def test_budget_exceeded(self):
        err = BudgetExceededError("c-1", Decimal("50"), Decimal("20"))
        assert err.requested == Decimal("50")
        assert err.remaining == Decimal("20")

    @pytest.mark.parametrize("cls", [ValidationError, StateConflictError])
    def test_catch_by_base(self, cls):
        with pytest.raises(MealKernelError):
            raise cls("x")
