"""
Eligibility Validator Engine.

Pure functions with deterministic behavior. No I/O.

Decides, per (employee, requested benefit kind), whether a benefit may be
created.  Rules run in a fixed order and stop at the first failure:

0. Status -- the employee is active and has accepted the portal invite.
1. Service type -- the employee must be configured for the requested kind.
2. Existing benefit -- no active benefit of the requested kind, and none of
   the other kind (the two kinds are mutually exclusive while active).
3. LUNCH only -- the working-day calendar contains at least one of Mon..Fri.
4. LUNCH only -- recurrence compatibility:
   EVERY_DAY needs all of Mon..Fri, EVERY_OTHER_DAY needs Mon/Wed/Fri,
   CUSTOM needs at least one explicit date on a working weekday.

A failed rule is a normal outcome, returned as ``EligibilityResult``; bulk
callers collect it per employee and move on.  Only malformed input raises.

The bulk targeting pipeline reuses the rule predicates below, so the
candidate list and the creation path can never disagree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from meal_config.schema import BusinessConfig
from meal_engines.calendar import WorkingDayCalendar
from meal_engines.schedule_types import Recurrence, RecurrenceKind
from meal_kernel.domain.dates import BUSINESS_WEEKDAYS, portal_weekday
from meal_kernel.logging_config import get_logger

logger = get_logger("engines.eligibility")


# ============================================================================
# Enums
# ============================================================================


class BenefitKind(str, Enum):
    """Kind of benefit; also the employee's configured service type."""

    LUNCH = "LUNCH"
    COMPENSATION = "COMPENSATION"

    @property
    def other(self) -> BenefitKind:
        if self is BenefitKind.LUNCH:
            return BenefitKind.COMPENSATION
        return BenefitKind.LUNCH


class ShiftType(str, Enum):
    """Delivery window of an employee."""

    DAY = "DAY"
    NIGHT = "NIGHT"


class InviteStatus(str, Enum):
    """Whether the employee accepted the portal invitation."""

    ACCEPTED = "Accepted"
    PENDING = "Pending"
    REJECTED = "Rejected"


class EligibilityReason(str, Enum):
    """Machine-readable outcome of an eligibility check."""

    ELIGIBLE = "ELIGIBLE"
    INACTIVE = "INACTIVE"
    INVITE_NOT_ACCEPTED = "INVITE_NOT_ACCEPTED"
    SERVICE_TYPE_UNSET = "SERVICE_TYPE_UNSET"
    CONFIGURED_FOR_LUNCH = "CONFIGURED_FOR_LUNCH"
    CONFIGURED_FOR_COMPENSATION = "CONFIGURED_FOR_COMPENSATION"
    ALREADY_HAS_ACTIVE_LUNCH = "ALREADY_HAS_ACTIVE_LUNCH"
    ALREADY_HAS_ACTIVE_COMPENSATION = "ALREADY_HAS_ACTIVE_COMPENSATION"
    NO_BUSINESS_DAYS = "NO_BUSINESS_DAYS"
    EVERY_DAY_REQUIRES_FULL_WEEK = "EVERY_DAY_REQUIRES_FULL_WEEK"
    EVERY_OTHER_DAY_REQUIRES_MON_WED_FRI = "EVERY_OTHER_DAY_REQUIRES_MON_WED_FRI"
    CUSTOM_DATES_OUTSIDE_CALENDAR = "CUSTOM_DATES_OUTSIDE_CALENDAR"


_MESSAGES = {
    EligibilityReason.ELIGIBLE: "Eligible",
    EligibilityReason.INACTIVE: "Employee is not active",
    EligibilityReason.INVITE_NOT_ACCEPTED: "Employee has not accepted the portal invite",
    EligibilityReason.SERVICE_TYPE_UNSET: "Employee has no service type configured",
    EligibilityReason.CONFIGURED_FOR_LUNCH: "Employee is configured for LUNCH",
    EligibilityReason.CONFIGURED_FOR_COMPENSATION: "Employee is configured for COMPENSATION",
    EligibilityReason.ALREADY_HAS_ACTIVE_LUNCH: "Employee already has an active LUNCH subscription",
    EligibilityReason.ALREADY_HAS_ACTIVE_COMPENSATION: "Employee already has an active COMPENSATION benefit",
    EligibilityReason.NO_BUSINESS_DAYS: "Working days contain no weekday Mon..Fri",
    EligibilityReason.EVERY_DAY_REQUIRES_FULL_WEEK: "EVERY_DAY requires Mon..Fri in the working days",
    EligibilityReason.EVERY_OTHER_DAY_REQUIRES_MON_WED_FRI: "EVERY_OTHER_DAY requires Mon, Wed and Fri in the working days",
    EligibilityReason.CUSTOM_DATES_OUTSIDE_CALENDAR: "No custom date falls on a working day",
}


# ============================================================================
# Value Objects
# ============================================================================


@dataclass(frozen=True)
class EmployeeSnapshot:
    """
    The scheduling-relevant view of an employee.

    Owned by the employee service; the engine only reads it.
    """

    id: UUID
    is_active: bool = True
    invite_status: InviteStatus = InviteStatus.ACCEPTED
    service_type: BenefitKind | None = None
    shift_type: ShiftType = ShiftType.DAY
    working_days: frozenset[int] = field(default_factory=frozenset)
    active_lunch_subscription_id: UUID | None = None
    active_compensation_id: UUID | None = None
    full_name: str = ""
    company_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "working_days", frozenset(self.working_days or ()))

    def active_benefit_id(self, kind: BenefitKind) -> UUID | None:
        if kind is BenefitKind.LUNCH:
            return self.active_lunch_subscription_id
        return self.active_compensation_id

    def calendar(self, config: BusinessConfig | None = None) -> WorkingDayCalendar:
        return WorkingDayCalendar.for_employee(self.working_days, config)


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of an eligibility check for one employee."""

    employee_id: UUID
    kind: BenefitKind
    reason_code: EligibilityReason

    @property
    def is_valid(self) -> bool:
        return self.reason_code is EligibilityReason.ELIGIBLE

    @property
    def message(self) -> str:
        return _MESSAGES[self.reason_code]


# ============================================================================
# Rule predicates
# ============================================================================


def status_reason(employee: EmployeeSnapshot) -> EligibilityReason | None:
    """Rule 0: failure reason, or None for an active employee who accepted the invite."""
    if not employee.is_active:
        return EligibilityReason.INACTIVE
    if employee.invite_status is not InviteStatus.ACCEPTED:
        return EligibilityReason.INVITE_NOT_ACCEPTED
    return None


def service_type_reason(employee: EmployeeSnapshot, kind: BenefitKind) -> EligibilityReason | None:
    """Rule 1: failure reason, or None when the service type matches."""
    if employee.service_type is None:
        return EligibilityReason.SERVICE_TYPE_UNSET
    if employee.service_type is not kind:
        if employee.service_type is BenefitKind.LUNCH:
            return EligibilityReason.CONFIGURED_FOR_LUNCH
        return EligibilityReason.CONFIGURED_FOR_COMPENSATION
    return None


def existing_benefit_reason(employee: EmployeeSnapshot, kind: BenefitKind) -> EligibilityReason | None:
    """Rule 2: failure reason, or None when no active benefit blocks creation."""
    for candidate in (kind, kind.other):
        if employee.active_benefit_id(candidate) is not None:
            if candidate is BenefitKind.LUNCH:
                return EligibilityReason.ALREADY_HAS_ACTIVE_LUNCH
            return EligibilityReason.ALREADY_HAS_ACTIVE_COMPENSATION
    return None


def has_business_days(calendar: WorkingDayCalendar) -> bool:
    """Rule 3: lunch is delivered on business days only."""
    return calendar.has_business_day


def recurrence_reason(
    calendar: WorkingDayCalendar,
    recurrence: Recurrence,
) -> EligibilityReason | None:
    """Rule 4: failure reason, or None when the calendar supports the recurrence."""
    if recurrence.kind is RecurrenceKind.EVERY_DAY:
        if not BUSINESS_WEEKDAYS <= calendar.days:
            return EligibilityReason.EVERY_DAY_REQUIRES_FULL_WEEK
    elif recurrence.kind is RecurrenceKind.EVERY_OTHER_DAY:
        if not calendar.every_other_day <= calendar.days:
            return EligibilityReason.EVERY_OTHER_DAY_REQUIRES_MON_WED_FRI
    else:
        custom_weekdays = {portal_weekday(d) for d in recurrence.custom_dates}
        if not custom_weekdays & calendar.days:
            return EligibilityReason.CUSTOM_DATES_OUTSIDE_CALENDAR
    return None


def recurrence_compatible(
    employee: EmployeeSnapshot,
    recurrence: Recurrence,
    config: BusinessConfig | None = None,
) -> bool:
    return recurrence_reason(employee.calendar(config), recurrence) is None


# ============================================================================
# Validator
# ============================================================================


def check_eligibility(
    employee: EmployeeSnapshot,
    kind: BenefitKind,
    recurrence: Recurrence | None = None,
    config: BusinessConfig | None = None,
) -> EligibilityResult:
    """
    Evaluate rules 0..4 in order and return the first failure.

    ``recurrence`` is ignored for COMPENSATION (always daily); for LUNCH,
    rule 4 is skipped when it is not supplied.
    """
    reason = (
        status_reason(employee)
        or service_type_reason(employee, kind)
        or existing_benefit_reason(employee, kind)
    )

    if reason is None and kind is BenefitKind.LUNCH:
        calendar = employee.calendar(config)
        if not has_business_days(calendar):
            reason = EligibilityReason.NO_BUSINESS_DAYS
        elif recurrence is not None:
            reason = recurrence_reason(calendar, recurrence)

    result = EligibilityResult(
        employee_id=employee.id,
        kind=kind,
        reason_code=reason or EligibilityReason.ELIGIBLE,
    )
    if not result.is_valid:
        logger.debug(
            "eligibility_rejected",
            extra={
                "employee_id": str(employee.id),
                "kind": kind.value,
                "reason_code": result.reason_code.value,
            },
        )
    return result
