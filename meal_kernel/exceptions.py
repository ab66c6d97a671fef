"""
Typed Exception Hierarchy for the Meal Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejection this engine produces ends up in front of an administrator
("created 8 of 10; errors: ..."), so callers must be able to tell a
malformed request from a business conflict without parsing messages:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (remaining quota, cutoff instant, ...)

Business-rule rejections from eligibility checks are NOT exceptions; they
are returned as ``meal_engines.eligibility.EligibilityResult`` so that bulk
callers keep processing the remaining employees.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MealKernelError (base)
    |
    +-- ValidationError (also a ValueError)
    |   +-- InvalidDateRangeError
    |   +-- StartDateInPastError
    |   +-- NonPositiveRateError
    |   +-- UnknownComboTypeError
    |   +-- InvalidRecurrenceError
    |   +-- EmptyTargetError
    |   +-- InvalidWorkingDaysError
    |   +-- InvalidCutoffTimeError
    |   +-- InvalidPatchError
    |   +-- BelowMinimumDaysError
    |
    +-- NotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- SubscriptionNotFoundError
    |   +-- OrderNotFoundError
    |   +-- CompensationNotFoundError
    |
    +-- StateConflictError
    |   +-- FreezeQuotaExceededError
    |   +-- CutoffPassedError
    |   +-- AlreadyCancelledError
    |   +-- AlreadyPausedError
    |   +-- AlreadyActiveError
    |   +-- InvalidTransitionError
    |   +-- OrderNotModifiableError
    |   +-- GuestOrderError
    |   +-- NoActiveSubscriptionError
    |   +-- BudgetExceededError
    |
    +-- PersistenceError
        +-- DuplicateActiveBenefitError
        +-- ConcurrentModificationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|-------------------------------------
Validation   | INVALID_DATE_RANGE        | start after end, missing dates
             | START_DATE_IN_PAST        | benefit starts before today
             | NON_POSITIVE_RATE         | combo price / daily limit <= 0
             | UNKNOWN_COMBO_TYPE        | combo not in configured price list
             | INVALID_RECURRENCE        | CUSTOM without dates, bad kind
             | EMPTY_TARGET              | no employees in request
             | INVALID_WORKING_DAYS      | weekday outside 0..6
             | INVALID_CUTOFF_TIME       | cutoff not "HH:mm"
             | INVALID_PATCH             | unknown or illegal patch field
             | BELOW_MIN_DAYS            | fewer days than minSubscriptionDays
-------------|---------------------------|-------------------------------------
NotFound     | EMPLOYEE_NOT_FOUND        |
             | SUBSCRIPTION_NOT_FOUND    |
             | ORDER_NOT_FOUND           |
             | COMPENSATION_NOT_FOUND    |
-------------|---------------------------|-------------------------------------
State        | FREEZE_QUOTA_EXCEEDED     | weekly freeze limit used up
             | CUTOFF_PASSED             | same-day mutation after cutoff
             | ALREADY_CANCELLED         | cancel of a cancelled benefit
             | ALREADY_PAUSED            | pause of a paused subscription
             | ALREADY_ACTIVE            | resume of an active subscription
             | INVALID_TRANSITION        | state machine forbids the move
             | ORDER_NOT_MODIFIABLE      | past or terminal order
             | GUEST_ORDER               | freeze/unfreeze of a guest order
             | NO_ACTIVE_SUBSCRIPTION    | employee has no active lunch plan
             | BUDGET_EXCEEDED           | compensation spend over budget
-------------|---------------------------|-------------------------------------
Persistence  | DUPLICATE_ACTIVE_BENEFIT  | uniqueness guard on active benefit
             | CONCURRENT_MODIFICATION   | transient conflict after retry

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        service.freeze_order(order_id, reason="sick day", actor_id=actor)
    except FreezeQuotaExceededError as e:
        return {"error": e.code, "remaining": e.remaining, "limit": e.limit}
    except CutoffPassedError as e:
        return {"error": e.code, "cutoff_at": e.cutoff_at.isoformat()}
    except StateConflictError as e:
        return {"error": e.code, "reason": e.reason_code}
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal


class MealKernelError(Exception):
    """
    Base exception for all meal kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MEAL_KERNEL_ERROR"


# =============================================================================
# Validation errors (malformed requests)
# =============================================================================


class ValidationError(MealKernelError, ValueError):
    """Base exception for malformed requests, rejected before any rule runs."""

    code: str = "VALIDATION_ERROR"


class InvalidDateRangeError(ValidationError):
    """Date range is missing a bound or is inverted."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start: date | None, end: date | None, detail: str = ""):
        self.start = start
        self.end = end
        message = f"Invalid date range {start} .. {end}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StartDateInPastError(ValidationError):
    """Benefit start date is before today."""

    code: str = "START_DATE_IN_PAST"

    def __init__(self, start: date, today: date):
        self.start = start
        self.today = today
        super().__init__(f"Start date {start} is before today ({today})")


class NonPositiveRateError(ValidationError):
    """Combo price, daily limit or budget is zero or negative."""

    code: str = "NON_POSITIVE_RATE"

    def __init__(self, field_name: str, value: Decimal):
        self.field_name = field_name
        self.value = value
        super().__init__(f"{field_name} must be positive, got {value}")


class UnknownComboTypeError(ValidationError):
    """Combo type has no configured price."""

    code: str = "UNKNOWN_COMBO_TYPE"

    def __init__(self, combo_type: str, known: tuple[str, ...] = ()):
        self.combo_type = combo_type
        self.known = known
        super().__init__(
            f"Unknown combo type {combo_type!r}. Known: {list(known)}"
        )


class InvalidRecurrenceError(ValidationError):
    """Recurrence descriptor cannot be expanded."""

    code: str = "INVALID_RECURRENCE"

    def __init__(self, kind: str, detail: str):
        self.kind = kind
        self.detail = detail
        super().__init__(f"Invalid recurrence {kind}: {detail}")


class EmptyTargetError(ValidationError):
    """Request does not name any employee."""

    code: str = "EMPTY_TARGET"

    def __init__(self):
        super().__init__("Request must target at least one employee")


class InvalidWorkingDaysError(ValidationError):
    """Working-day calendar contains a value outside 0..6."""

    code: str = "INVALID_WORKING_DAYS"

    def __init__(self, values: tuple[int, ...]):
        self.values = values
        super().__init__(f"Working days must be within 0..6, got {list(values)}")


class InvalidCutoffTimeError(ValidationError):
    """Cutoff time is not a valid HH:mm string."""

    code: str = "INVALID_CUTOFF_TIME"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Cutoff time must be HH:mm, got {value!r}")


class InvalidPatchError(ValidationError):
    """Update patch names an unknown field or an illegal value."""

    code: str = "INVALID_PATCH"

    def __init__(self, field_name: str, detail: str):
        self.field_name = field_name
        self.detail = detail
        super().__init__(f"Invalid patch field {field_name!r}: {detail}")


class BelowMinimumDaysError(ValidationError):
    """Expanded schedule has fewer days than the configured minimum."""

    code: str = "BELOW_MIN_DAYS"

    def __init__(self, days: int, minimum: int):
        self.days = days
        self.minimum = minimum
        super().__init__(
            f"Schedule yields {days} day(s); minimum is {minimum}"
        )


# =============================================================================
# Not-found errors
# =============================================================================


class NotFoundError(MealKernelError):
    """Base exception for missing aggregates."""

    code: str = "NOT_FOUND"


class EmployeeNotFoundError(NotFoundError):
    """Employee with given ID was not found."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class SubscriptionNotFoundError(NotFoundError):
    """Lunch subscription with given ID was not found."""

    code: str = "SUBSCRIPTION_NOT_FOUND"

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription not found: {subscription_id}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class CompensationNotFoundError(NotFoundError):
    """Compensation benefit with given ID was not found."""

    code: str = "COMPENSATION_NOT_FOUND"

    def __init__(self, compensation_id: str):
        self.compensation_id = compensation_id
        super().__init__(f"Compensation not found: {compensation_id}")


# =============================================================================
# State conflicts (valid request, current state forbids it)
# =============================================================================


class StateConflictError(MealKernelError):
    """Base exception for requests the current state does not allow."""

    code: str = "STATE_CONFLICT"
    reason_code: str = "STATE_CONFLICT"


class FreezeQuotaExceededError(StateConflictError):
    """Employee has used every freeze allowed this week."""

    code: str = "FREEZE_QUOTA_EXCEEDED"
    reason_code: str = "FREEZE_QUOTA_EXCEEDED"

    def __init__(
        self,
        employee_id: str,
        used: int,
        limit: int,
        week_start: date,
        week_end: date,
    ):
        self.employee_id = employee_id
        self.used = used
        self.limit = limit
        self.remaining = max(0, limit - used)
        self.week_start = week_start
        self.week_end = week_end
        super().__init__(
            f"Freeze limit reached for employee {employee_id}: "
            f"{used} of {limit} used in week {week_start} .. {week_end}"
        )


class CutoffPassedError(StateConflictError):
    """Same-day mutation attempted after the daily cutoff."""

    code: str = "CUTOFF_PASSED"
    reason_code: str = "CUTOFF_PASSED"

    def __init__(self, order_date: date, cutoff_at: datetime, now: datetime):
        self.order_date = order_date
        self.cutoff_at = cutoff_at
        self.now = now
        super().__init__(
            f"Cutoff for {order_date} passed at {cutoff_at.strftime('%H:%M')}"
        )


class AlreadyCancelledError(StateConflictError):
    """Benefit is already cancelled."""

    code: str = "ALREADY_CANCELLED"
    reason_code: str = "ALREADY_CANCELLED"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} is already cancelled")


class AlreadyPausedError(StateConflictError):
    """Subscription is already paused."""

    code: str = "ALREADY_PAUSED"
    reason_code: str = "ALREADY_PAUSED"

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription {subscription_id} is already paused")


class AlreadyActiveError(StateConflictError):
    """Subscription is already active."""

    code: str = "ALREADY_ACTIVE"
    reason_code: str = "ALREADY_ACTIVE"

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription {subscription_id} is already active")


class InvalidTransitionError(StateConflictError):
    """State machine does not allow the requested transition."""

    code: str = "INVALID_TRANSITION"
    reason_code: str = "INVALID_TRANSITION"

    def __init__(self, machine: str, from_status: str, to_status: str):
        self.machine = machine
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{machine}: transition {from_status} -> {to_status} is not allowed"
        )


class OrderNotModifiableError(StateConflictError):
    """Order is in the past or in a state that cannot be changed."""

    code: str = "ORDER_NOT_MODIFIABLE"
    reason_code: str = "ORDER_NOT_MODIFIABLE"

    def __init__(self, order_id: str, status: str, order_date: date, detail: str):
        self.order_id = order_id
        self.status = status
        self.order_date = order_date
        self.detail = detail
        super().__init__(
            f"Order {order_id} ({status}, {order_date}) cannot be changed: {detail}"
        )


class GuestOrderError(StateConflictError):
    """Guest orders have no employee and cannot be frozen or unfrozen."""

    code: str = "GUEST_ORDER"
    reason_code: str = "GUEST_ORDER"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} is a guest order")


class NoActiveSubscriptionError(StateConflictError):
    """Employee has no active lunch subscription."""

    code: str = "NO_ACTIVE_SUBSCRIPTION"
    reason_code: str = "NO_ACTIVE_SUBSCRIPTION"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee {employee_id} has no active subscription")


class BudgetExceededError(StateConflictError):
    """Compensation spend would exceed the remaining budget."""

    code: str = "BUDGET_EXCEEDED"
    reason_code: str = "BUDGET_EXCEEDED"

    def __init__(self, compensation_id: str, requested: Decimal, remaining: Decimal):
        self.compensation_id = compensation_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Compensation {compensation_id}: {requested} requested, "
            f"{remaining} remaining"
        )


# =============================================================================
# Persistence errors
# =============================================================================


class PersistenceError(MealKernelError):
    """Base exception for storage-level failures."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class DuplicateActiveBenefitError(PersistenceError):
    """Storage uniqueness guard rejected a second active benefit."""

    code: str = "DUPLICATE_ACTIVE_BENEFIT"

    def __init__(self, employee_id: str, kind: str):
        self.employee_id = employee_id
        self.kind = kind
        super().__init__(
            "create_benefit",
            f"employee {employee_id} already has an active {kind} benefit",
        )


class ConcurrentModificationError(PersistenceError):
    """Transient conflict persisted after the retry budget was spent."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, operation: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            operation, f"conflict persisted after {attempts} attempt(s)"
        )
