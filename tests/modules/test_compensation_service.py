"""
Scenario tests for CompensationService.

Default grant: 100.00 a day over January 2024 (23 working days), so the
automatic budget is 2300.00.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from meal_config.schema import BusinessConfig
from meal_engines.eligibility import BenefitKind, InviteStatus
from meal_engines.lifecycle import SubscriptionStatus
from meal_kernel.exceptions import (
    AlreadyCancelledError,
    BudgetExceededError,
    CompensationNotFoundError,
    InvalidDateRangeError,
    InvalidPatchError,
    StartDateInPastError,
)
from meal_modules.compensation.models import CompensationPatch, CompensationRequest
from meal_modules.compensation.service import CompensationService

MONDAY = date(2024, 1, 1)


class TestCreateCompensations:

    def test_budget_defaults_to_days_times_limit(self, grant_compensation, make_employee):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        assert comp.total_days == 23
        assert comp.total_budget == Decimal("2300.00")
        assert comp.status is SubscriptionStatus.ACTIVE
        assert comp.remaining_budget == Decimal("2300.00")

    def test_budget_per_employee_calendar(self, compensation_service, make_employee, test_actor_id):
        weekdays = make_employee(service_type=BenefitKind.COMPENSATION)
        three_days = make_employee(service_type=BenefitKind.COMPENSATION, working_days=frozenset({1, 3, 5}))
        result = compensation_service.create_compensations(
            CompensationRequest(
                employee_ids=(weekdays.id, three_days.id),
                daily_limit=Decimal("100"),
                start_date=MONDAY,
                end_date=date(2024, 1, 7),
            ),
            actor_id=test_actor_id,
        )
        assert [c.total_budget for c in result.created] == [Decimal("500.00"), Decimal("300.00")]
        assert result.total_budget == Decimal("800.00")

    def test_explicit_budget(self, grant_compensation, make_employee):
        comp = grant_compensation(
            make_employee(service_type=BenefitKind.COMPENSATION), total_budget=Decimal("1000"),
        )
        assert comp.total_budget == Decimal("1000")

    def test_lunch_employee_rejected(self, compensation_service, make_employee, test_actor_id):
        employee = make_employee()
        result = compensation_service.create_compensations(
            CompensationRequest(employee_ids=(employee.id,), daily_limit=Decimal("100"), start_date=MONDAY),
            actor_id=test_actor_id,
        )
        assert result.errors[0].reason_code == "CONFIGURED_FOR_LUNCH"

    def test_inactive_and_pending_rejected(self, compensation_service, make_employee, test_actor_id):
        inactive = make_employee(service_type=BenefitKind.COMPENSATION, is_active=False)
        pending = make_employee(service_type=BenefitKind.COMPENSATION, invite_status=InviteStatus.PENDING)
        result = compensation_service.create_compensations(
            CompensationRequest(
                employee_ids=(inactive.id, pending.id), daily_limit=Decimal("100"), start_date=MONDAY,
            ),
            actor_id=test_actor_id,
        )
        assert result.created == ()
        assert [e.reason_code for e in result.errors] == ["INACTIVE", "INVITE_NOT_ACCEPTED"]

    def test_unknown_employee_reported(self, compensation_service, make_employee, test_actor_id):
        known = make_employee(service_type=BenefitKind.COMPENSATION)
        missing = uuid4()
        result = compensation_service.create_compensations(
            CompensationRequest(
                employee_ids=(missing, known.id), daily_limit=Decimal("100"), start_date=MONDAY,
            ),
            actor_id=test_actor_id,
        )
        assert len(result.created) == 1
        assert [(e.item_id, e.reason_code) for e in result.errors] == [(missing, "EMPLOYEE_NOT_FOUND")]

    def test_completion_logged_with_counts(self, grant_compensation, make_employee, captured_logs):
        grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        completed = next(r for r in captured_logs() if r["message"] == "bulk_create_completed")
        assert completed["created_count"] == 1

    def test_end_date_defaults_to_one_month(self, compensation_service, make_employee, test_actor_id):
        employee = make_employee(service_type=BenefitKind.COMPENSATION)
        result = compensation_service.create_compensations(
            CompensationRequest(employee_ids=(employee.id,), daily_limit=Decimal("50"), start_date=MONDAY),
            actor_id=test_actor_id,
        )
        assert result.created[0].end_date == date(2024, 1, 31)

    def test_start_in_past(self, compensation_service, make_employee, test_actor_id):
        employee = make_employee(service_type=BenefitKind.COMPENSATION)
        with pytest.raises(StartDateInPastError):
            compensation_service.create_compensations(
                CompensationRequest(
                    employee_ids=(employee.id,), daily_limit=Decimal("50"), start_date=date(2023, 12, 1),
                ),
                actor_id=test_actor_id,
            )

    def test_weekend_only_period_rejected(self, compensation_service, make_employee, test_actor_id):
        employee = make_employee(service_type=BenefitKind.COMPENSATION)
        result = compensation_service.create_compensations(
            CompensationRequest(
                employee_ids=(employee.id,),
                daily_limit=Decimal("50"),
                start_date=date(2024, 1, 6),
                end_date=date(2024, 1, 7),
            ),
            actor_id=test_actor_id,
        )
        assert result.errors[0].reason_code == "BELOW_MIN_DAYS"

    def test_created_event(self, grant_compensation, make_employee, events):
        grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        (event,) = events.of_type("compensation.created")
        assert event.payload["total_budget"] == "2300.00"


class TestRecordTransaction:

    def test_split_over_daily_limit(self, compensation_service, grant_compensation, make_employee, test_actor_id):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        compensation_service.record_transaction(comp.id, Decimal("60"), test_actor_id)
        result = compensation_service.record_transaction(comp.id, Decimal("70"), test_actor_id)

        assert result.transaction.company_pays == Decimal("40.00")
        assert result.transaction.employee_pays == Decimal("30.00")
        assert result.compensation.used_amount == Decimal("100.00")
        assert len(compensation_service.list_transactions(comp.id)) == 2

    def test_outside_period(self, compensation_service, grant_compensation, make_employee, test_actor_id):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        with pytest.raises(InvalidDateRangeError):
            compensation_service.record_transaction(comp.id, Decimal("10"), test_actor_id, on=date(2024, 2, 1))

    def test_cancelled_compensation(self, compensation_service, grant_compensation, make_employee, test_actor_id):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        compensation_service.cancel_compensation(comp.id, test_actor_id)
        with pytest.raises(InvalidPatchError):
            compensation_service.record_transaction(comp.id, Decimal("10"), test_actor_id)

    def test_budget_guard_without_overdraft(
        self, session, deterministic_clock, events, make_employee, test_actor_id,
    ):
        service = CompensationService(
            session,
            clock=deterministic_clock,
            config=BusinessConfig(allow_budget_overdraft=False),
            events=events,
        )
        employee = make_employee(service_type=BenefitKind.COMPENSATION)
        comp = service.create_compensations(
            CompensationRequest(
                employee_ids=(employee.id,),
                daily_limit=Decimal("100"),
                start_date=MONDAY,
                total_budget=Decimal("50"),
            ),
            actor_id=test_actor_id,
        ).created[0]
        with pytest.raises(BudgetExceededError):
            service.record_transaction(comp.id, Decimal("80"), test_actor_id)
        assert service.get_compensation(comp.id).used_amount == Decimal("0")


class TestCloseDay:

    def test_carry_over_rolls_unused_allowance(
        self, compensation_service, grant_compensation, make_employee, test_actor_id,
    ):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION), carry_over=True)
        compensation_service.record_transaction(comp.id, Decimal("35"), test_actor_id)
        closed = compensation_service.close_day(comp.id, MONDAY, test_actor_id)
        assert closed.accumulated_balance == Decimal("65.00")
        assert closed.last_closed_date == MONDAY

    def test_closing_twice_is_noop(
        self, compensation_service, grant_compensation, make_employee, test_actor_id,
    ):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION), carry_over=True)
        compensation_service.close_day(comp.id, MONDAY, test_actor_id)
        again = compensation_service.close_day(comp.id, MONDAY, test_actor_id)
        assert again.accumulated_balance == Decimal("100.00")

    def test_balance_spent_next_day(
        self, compensation_service, grant_compensation, make_employee, test_actor_id, deterministic_clock,
    ):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION), carry_over=True)
        compensation_service.close_day(comp.id, MONDAY, test_actor_id)
        deterministic_clock.advance_days(1)
        result = compensation_service.record_transaction(comp.id, Decimal("150"), test_actor_id)
        assert result.transaction.company_pays == Decimal("150.00")
        assert result.transaction.drawn_from_balance == Decimal("50.00")
        assert result.compensation.accumulated_balance == Decimal("50.00")


class TestCancelAndUpdate:

    def test_refund_is_unspent_budget(
        self, compensation_service, grant_compensation, make_employee, test_actor_id,
    ):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        compensation_service.record_transaction(comp.id, Decimal("80"), test_actor_id)
        result = compensation_service.cancel_compensation(comp.id, test_actor_id)
        assert result.refund_amount == Decimal("2220.00")
        assert result.compensation.status is SubscriptionStatus.CANCELLED

    def test_second_cancel(self, compensation_service, grant_compensation, make_employee, test_actor_id):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        compensation_service.cancel_compensation(comp.id, test_actor_id)
        with pytest.raises(AlreadyCancelledError):
            compensation_service.cancel_compensation(comp.id, test_actor_id)

    def test_shorten_period_recounts_days(
        self, compensation_service, grant_compensation, make_employee, test_actor_id,
    ):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        updated = compensation_service.update_compensation(
            comp.id, CompensationPatch(end_date=date(2024, 1, 12)), test_actor_id,
        )
        assert updated.total_days == 10

    def test_budget_below_spend(self, compensation_service, grant_compensation, make_employee, test_actor_id):
        comp = grant_compensation(make_employee(service_type=BenefitKind.COMPENSATION))
        compensation_service.record_transaction(comp.id, Decimal("90"), test_actor_id)
        with pytest.raises(InvalidPatchError):
            compensation_service.update_compensation(
                comp.id, CompensationPatch(total_budget=Decimal("50")), test_actor_id,
            )

    def test_unknown(self, compensation_service):
        with pytest.raises(CompensationNotFoundError):
            compensation_service.get_compensation(uuid4())


class TestRenewal:

    def test_successor_starts_fresh(
        self, compensation_service, grant_compensation, make_employee, test_actor_id, deterministic_clock,
    ):
        comp = grant_compensation(
            make_employee(service_type=BenefitKind.COMPENSATION),
            end=date(2024, 1, 7),
            carry_over=True,
            auto_renew=True,
        )
        compensation_service.record_transaction(comp.id, Decimal("20"), test_actor_id)
        compensation_service.close_day(comp.id, MONDAY, test_actor_id)
        deterministic_clock.set_time(datetime(2024, 1, 8, 1, 0, tzinfo=timezone.utc))

        completed, renewed = compensation_service.complete_and_renew(comp.id, test_actor_id)
        assert completed.status is SubscriptionStatus.COMPLETED
        assert renewed.start_date == date(2024, 1, 8)
        assert renewed.end_date == date(2024, 1, 14)
        assert renewed.total_budget == Decimal("500.00")
        assert renewed.accumulated_balance == Decimal("0")
        assert renewed.renewed_from_id == comp.id
