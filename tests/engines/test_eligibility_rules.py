"""
Tests for the eligibility validator.

Rules are evaluated in order and the first failure wins; failures are
returned as results, never raised.
"""

from datetime import date
from uuid import uuid4

import pytest

from meal_engines.eligibility import (
    BenefitKind,
    EligibilityReason,
    InviteStatus,
    check_eligibility,
    recurrence_compatible,
)
from meal_engines.schedule_types import Recurrence

SAT = date(2024, 1, 6)


class TestStatus:

    def test_inactive_employee_is_rejected(self, make_snapshot):
        result = check_eligibility(make_snapshot(is_active=False), BenefitKind.LUNCH)
        assert result.reason_code is EligibilityReason.INACTIVE

    @pytest.mark.parametrize("status", [InviteStatus.PENDING, InviteStatus.REJECTED])
    def test_invite_not_accepted_is_rejected(self, make_snapshot, status):
        result = check_eligibility(make_snapshot(invite_status=status), BenefitKind.COMPENSATION)
        assert result.reason_code is EligibilityReason.INVITE_NOT_ACCEPTED

    def test_status_checked_before_service_type(self, make_snapshot):
        employee = make_snapshot(is_active=False, service_type=None)
        assert check_eligibility(employee, BenefitKind.LUNCH).reason_code is EligibilityReason.INACTIVE


class TestServiceType:

    def test_unset_service_type_is_rejected(self, make_snapshot):
        result = check_eligibility(make_snapshot(service_type=None), BenefitKind.LUNCH)
        assert not result.is_valid
        assert result.reason_code is EligibilityReason.SERVICE_TYPE_UNSET

    def test_reason_names_configured_kind(self, make_snapshot):
        employee = make_snapshot(service_type=BenefitKind.COMPENSATION)
        result = check_eligibility(employee, BenefitKind.LUNCH)
        assert result.reason_code is EligibilityReason.CONFIGURED_FOR_COMPENSATION

    def test_service_type_checked_before_existing_benefit(self, make_snapshot):
        employee = make_snapshot(service_type=BenefitKind.LUNCH, active_lunch_subscription_id=uuid4())
        result = check_eligibility(employee, BenefitKind.COMPENSATION)
        assert result.reason_code is EligibilityReason.CONFIGURED_FOR_LUNCH


class TestExistingBenefit:

    def test_active_lunch_blocks_lunch(self, make_snapshot):
        employee = make_snapshot(active_lunch_subscription_id=uuid4())
        result = check_eligibility(employee, BenefitKind.LUNCH, Recurrence.every_day())
        assert result.reason_code is EligibilityReason.ALREADY_HAS_ACTIVE_LUNCH
        assert "already has an active LUNCH" in result.message

    def test_active_compensation_blocks_lunch(self, make_snapshot):
        employee = make_snapshot(active_compensation_id=uuid4())
        result = check_eligibility(employee, BenefitKind.LUNCH)
        assert result.reason_code is EligibilityReason.ALREADY_HAS_ACTIVE_COMPENSATION


class TestLunchCalendarRules:

    def test_weekend_only_calendar_has_no_business_days(self, make_snapshot):
        employee = make_snapshot(working_days=frozenset({0, 6}))
        result = check_eligibility(employee, BenefitKind.LUNCH, Recurrence.every_day())
        assert result.reason_code is EligibilityReason.NO_BUSINESS_DAYS

    def test_every_day_requires_full_business_week(self, make_snapshot):
        employee = make_snapshot(working_days=frozenset({1, 2, 3, 4}))
        result = check_eligibility(employee, BenefitKind.LUNCH, Recurrence.every_day())
        assert result.reason_code is EligibilityReason.EVERY_DAY_REQUIRES_FULL_WEEK

    def test_every_other_day_requires_mon_wed_fri(self, make_snapshot):
        employee = make_snapshot(working_days=frozenset({1, 2, 3}))
        result = check_eligibility(employee, BenefitKind.LUNCH, Recurrence.every_other_day())
        assert result.reason_code is EligibilityReason.EVERY_OTHER_DAY_REQUIRES_MON_WED_FRI

    def test_custom_needs_one_overlapping_weekday(self, make_snapshot):
        employee = make_snapshot()
        result = check_eligibility(employee, BenefitKind.LUNCH, Recurrence.custom([SAT]))
        assert result.reason_code is EligibilityReason.CUSTOM_DATES_OUTSIDE_CALENDAR

    def test_partial_custom_overlap_is_eligible(self, make_snapshot):
        employee = make_snapshot()
        recurrence = Recurrence.custom([date(2024, 1, 1), SAT])
        assert check_eligibility(employee, BenefitKind.LUNCH, recurrence).is_valid

    def test_empty_calendar_uses_default(self, make_snapshot):
        employee = make_snapshot(working_days=frozenset())
        assert recurrence_compatible(employee, Recurrence.every_day())

    def test_compensation_ignores_calendar_rules(self, make_snapshot):
        employee = make_snapshot(service_type=BenefitKind.COMPENSATION, working_days=frozenset({0, 6}))
        assert check_eligibility(employee, BenefitKind.COMPENSATION).is_valid


@pytest.mark.parametrize("kind", list(BenefitKind))
def test_eligible_employee(make_snapshot, kind):
    result = check_eligibility(make_snapshot(service_type=kind), kind, Recurrence.every_day())
    assert result.is_valid
    assert result.reason_code is EligibilityReason.ELIGIBLE
