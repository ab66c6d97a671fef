"""
Lunch Subscription Service (``meal_modules.lunch.service``).

Responsibility
--------------
Orchestrates the lifecycle of lunch subscriptions -- bulk creation,
editing, cancellation with refund, single-day freeze and unfreeze, freeze
of a period, pause and resume, daily settlement and auto-renewal -- by
delegating every scheduling rule to ``meal_engines`` and persisting
subscriptions and their orders.

Architecture position
---------------------
**Modules layer** -- thin orchestration.  ``LunchSubscriptionService`` is
the sole public entry point for lunch operations.  It composes the pure
engines (calendar, recurrence, eligibility, pricing, lifecycle, cutoff)
with ``EmployeeDirectory`` for the employee read model.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on
  success, ``rollback`` on exception) unless built with
  ``auto_commit=False``, in which case the caller owns it.
* One clock reading per operation: every employee of a bulk request and
  every order of a period freeze is judged against the same ``now``.
* Orders dated before today, and orders in a terminal state, are never
  changed.
* ``total_days`` / ``total_price`` are recomputed from persisted orders,
  and refunds are the sum of persisted future order prices.

Failure modes
-------------
* ``ValidationError`` -- malformed request, raised before any rule runs.
* ``EligibilityResult`` failures -- reported per employee, never raised.
* ``StateConflictError`` -- quota, cutoff, already cancelled/paused/active.
* ``PersistenceError`` -- storage guard fired after the transient retry.

Usage::

    service = LunchSubscriptionService(session, clock=clock, config=config)
    result = service.create_subscriptions(
        LunchSubscriptionRequest(
            employee_ids=(employee_id,),
            combo_type="Комбо 25",
            recurrence=Recurrence.every_day(),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        ),
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from meal_config import get_active_config
from meal_config.schema import BusinessConfig
from meal_engines.bulk_targeting import PipelineResult, TargetingCriteria, run_pipeline
from meal_engines.calendar import WorkingDayCalendar
from meal_engines.cutoff import ensure_before_cutoff, is_past_cutoff
from meal_engines.eligibility import (
    BenefitKind,
    EmployeeSnapshot,
    check_eligibility,
    recurrence_reason,
)
from meal_engines.lifecycle import (
    ORDER_MACHINE,
    SUBSCRIPTION_MACHINE,
    FreezeQuota,
    OrderStatus,
    SubscriptionStatus,
    ensure_can_freeze,
    ensure_can_unfreeze,
    ensure_freeze_available,
    extended_end_date,
    freeze_quota,
)
from meal_engines.pricing import (
    PricePreview,
    daily_rate,
    preview_price_change,
    refund_amount,
    repricing_delta,
    total_cost,
)
from meal_engines.recurrence import custom_range, expand, explain_expansion, extend_to_day_count
from meal_engines.schedule_types import Recurrence
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.domain.dates import add_months
from meal_kernel.exceptions import (
    AlreadyActiveError,
    AlreadyCancelledError,
    AlreadyPausedError,
    BelowMinimumDaysError,
    EmployeeNotFoundError,
    FreezeQuotaExceededError,
    GuestOrderError,
    InvalidDateRangeError,
    InvalidPatchError,
    InvalidRecurrenceError,
    NoActiveSubscriptionError,
    OrderNotFoundError,
    StartDateInPastError,
    SubscriptionNotFoundError,
)
from meal_kernel.logging_config import LogContext, get_logger
from meal_modules._bulk import BulkItemError, BulkOutcome, isolate_each, unique_ids
from meal_modules._persistence import with_persistence_retry
from meal_modules.employees.directory import EmployeeDirectory
from meal_modules.events import BenefitEvent, EventSink, NullEventSink
from meal_modules.lunch.models import (
    BulkCreateResult,
    CancelResult,
    FreezePeriodResult,
    FreezeResult,
    LunchSubscription,
    LunchSubscriptionRequest,
    Order,
    SettlementCharge,
    SkippedOrder,
    SubscriptionPatch,
    UnfreezeResult,
    UpdateResult,
)
from meal_modules.lunch.orm import LunchSubscriptionModel, OrderModel

logger = get_logger("modules.lunch.service")

_BILLABLE = (OrderStatus.ACTIVE.value, OrderStatus.PAUSED.value)
# Orders that count toward the contracted days and price
_COUNTED = (
    OrderStatus.ACTIVE.value,
    OrderStatus.PAUSED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.COMPLETED.value,
)


class LunchSubscriptionService:
    """
    Orchestrates lunch subscriptions through the engines and storage.

    Contract
    --------
    * ``create_subscriptions`` never raises for a per-employee rejection;
      the result lists created subscriptions and per-employee errors.
    * Every other mutation raises a typed ``MealKernelError`` on rejection
      and leaves storage unchanged.

    Guarantees
    ----------
    * Session is committed only on success; otherwise rolled back.
    * Clock and configuration are injectable for deterministic testing.
    * Events are published only after the commit succeeded.

    Non-goals
    ---------
    * Does NOT mutate a financial ledger; refunds and settlement charges
      are returned and published for the budget-ledger collaborator.
    * Does NOT own employees; they are read through ``EmployeeDirectory``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BusinessConfig | None = None,
        events: EventSink | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._events = events if events is not None else NullEventSink()
        self._auto_commit = auto_commit
        self._directory = EmployeeDirectory(session)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_subscription(self, subscription_id: UUID) -> LunchSubscription:
        return self._load_subscription(subscription_id).to_dto()

    def list_orders(self, subscription_id: UUID) -> list[Order]:
        self._load_subscription(subscription_id)
        return [o.to_dto() for o in self._orders(subscription_id)]

    def get_freeze_info(self, employee_id: UUID) -> FreezeQuota:
        """Freeze quota of the week containing today."""
        return self._quota(employee_id, self._clock.today())

    def preview_price_change(self, subscription_id: UUID, new_combo_type: str) -> PricePreview:
        """Effect of switching the future orders to ``new_combo_type``."""
        sub = self._load_subscription(subscription_id)
        tomorrow = self._clock.today() + timedelta(days=1)
        affected = self._session.execute(
            select(func.count(OrderModel.id))
            .where(OrderModel.subscription_id == sub.id)
            .where(OrderModel.order_date >= tomorrow)
            .where(OrderModel.status.in_(_BILLABLE))
        ).scalar_one()
        new_price = daily_rate(BenefitKind.LUNCH, new_combo_type, self._config)
        return preview_price_change(sub.price, new_price, affected)

    def find_candidates(self, company_id: UUID, criteria: TargetingCriteria) -> PipelineResult:
        """Run the bulk targeting pipeline over a company's employees."""
        employees = self._directory.list_for_company(company_id)
        return run_pipeline(employees, criteria=criteria, config=self._config)

    # =========================================================================
    # Create
    # =========================================================================

    def create_subscriptions(
        self,
        request: LunchSubscriptionRequest,
        actor_id: UUID,
    ) -> BulkCreateResult:
        """
        Create one subscription per target employee.

        The request is validated once (start not in the past, known combo);
        each employee then runs eligibility, expansion over their own
        calendar and the minimum-days check, and is materialized inside
        its own SAVEPOINT.

        Raises:
            StartDateInPastError, UnknownComboTypeError, InvalidDateRangeError
        """
        now = self._clock.now()
        today = now.date()
        cfg = self._config

        start, end = self._resolve_period(request.start_date, request.end_date)
        if start < today:
            raise StartDateInPastError(start, today)
        rate = daily_rate(BenefitKind.LUNCH, request.combo_type, cfg)

        logger.info("bulk_create_started", extra={
            "kind": BenefitKind.LUNCH.value,
            "requested": len(request.employee_ids),
            "schedule_type": request.recurrence.kind.value,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        })

        snapshots = self._directory.get_many(request.employee_ids)
        events: list[BenefitEvent] = []

        def create_one(employee_id: UUID) -> LunchSubscription | BulkItemError:
            employee = snapshots.get(employee_id)
            if employee is None:
                raise EmployeeNotFoundError(str(employee_id))

            eligibility = check_eligibility(employee, BenefitKind.LUNCH, request.recurrence, cfg)
            if not eligibility.is_valid:
                return BulkItemError(employee_id, eligibility.reason_code.value, eligibility.message)

            expansion = explain_expansion(request.recurrence, employee.working_days, start, end, cfg)
            if expansion.day_count < cfg.min_subscription_days:
                error = BelowMinimumDaysError(expansion.day_count, cfg.min_subscription_days)
                return BulkItemError(employee_id, error.code, str(error))

            model = self._materialize(
                employee=employee,
                recurrence=request.recurrence,
                dates=expansion.dates,
                combo_type=request.combo_type,
                price=rate,
                start=start,
                end=end,
                auto_renew=request.auto_renew,
                company_id=request.company_id or employee.company_id,
                actor_id=actor_id,
            )
            dto = model.to_dto()
            events.append(self._event("subscription.created", now, {
                "subscription_id": str(dto.id),
                "employee_id": str(dto.employee_id),
                "total_price": str(dto.total_price),
                "day_count": dto.total_days,
            }))
            return dto

        try:
            outcome = isolate_each(
                self._session, request.employee_ids, create_one, "create_subscription",
            )
            self._commit()
        except Exception:
            self._rollback()
            raise

        result = BulkCreateResult.from_outcome(outcome)
        logger.info("bulk_create_completed", extra={
            "kind": BenefitKind.LUNCH.value,
            "created_count": len(result.created),
            "failed": len(result.errors),
            "total_price": str(result.total_price),
        })
        self._publish(events)
        return result

    # =========================================================================
    # Update
    # =========================================================================

    def update_subscription(
        self,
        subscription_id: UUID,
        patch: SubscriptionPatch,
        actor_id: UUID,
    ) -> UpdateResult:
        """
        Change combo, recurrence or auto-renew of an open subscription.

        Only orders dated tomorrow or later are re-priced or regenerated.

        Raises:
            InvalidPatchError: empty patch, or closed subscription.
            AlreadyCancelledError: subscription is cancelled.
            InvalidRecurrenceError: recurrence not supported by the
                employee's calendar.
        """
        today = self._clock.today()
        tomorrow = today + timedelta(days=1)
        cfg = self._config

        if patch.is_empty:
            raise InvalidPatchError("patch", "no field to change")

        try:
            sub = self._load_subscription(subscription_id, for_update=True)
            self._ensure_open(sub)

            old_future = self._future_billable(sub.id, tomorrow)
            old_prices = [o.price for o in old_future]
            regenerated = 0

            if patch.combo_type is not None and patch.combo_type != sub.combo_type:
                sub.price = daily_rate(BenefitKind.LUNCH, patch.combo_type, cfg)
                sub.combo_type = patch.combo_type
                for order in old_future:
                    order.combo_type = sub.combo_type
                    order.price = sub.price
                    order.updated_by_id = actor_id

            if patch.recurrence is not None and patch.recurrence != sub.recurrence:
                regenerated = self._regenerate(sub, patch.recurrence, tomorrow, actor_id)

            if patch.auto_renew is not None:
                sub.auto_renew = patch.auto_renew

            self._recompute_totals(sub)
            sub.updated_by_id = actor_id
            self._session.flush()

            new_prices = [o.price for o in self._future_billable(sub.id, tomorrow)]
            delta = repricing_delta(old_prices, new_prices)
            dto = sub.to_dto()
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("subscription_updated", extra={
            "subscription_id": str(subscription_id),
            "combo_type": dto.combo_type,
            "schedule_type": dto.recurrence.kind.value,
            "regenerated_order_count": regenerated,
            "price_delta": str(delta),
        })
        return UpdateResult(subscription=dto, price_delta=delta, regenerated_order_count=regenerated)

    def _regenerate(
        self,
        sub: LunchSubscriptionModel,
        recurrence: Recurrence,
        first_day: date,
        actor_id: UUID,
    ) -> int:
        """Replace billable orders from ``first_day`` on with a new expansion."""
        employee = self._directory.get(sub.employee_id)
        reason = recurrence_reason(employee.calendar(self._config), recurrence)
        if reason is not None:
            raise InvalidRecurrenceError(recurrence.kind.value, reason.value)

        end = sub.end_date
        if recurrence.kind.is_custom:
            end = custom_range(recurrence)[1]
        dates = expand(recurrence, employee.working_days, first_day, end, self._config)
        status = (
            OrderStatus.PAUSED if sub.status == SubscriptionStatus.PAUSED.value else OrderStatus.ACTIVE
        )

        def write() -> int:
            stale = self._future_billable(sub.id, first_day)
            stale_ids = {o.id for o in stale}
            for frozen in self._orders(sub.id, OrderModel.status == OrderStatus.FROZEN.value):
                if frozen.replacement_order_id in stale_ids:
                    frozen.replacement_order_id = None
            for order in stale:
                self._session.delete(order)
            self._session.flush()

            occupied = {o.order_date for o in self._orders(sub.id)}
            added = 0
            for day in dates:
                if day in occupied:
                    continue
                self._session.add(self._new_order(sub, day, status, actor_id))
                added += 1
            sub.recurrence = recurrence
            if recurrence.kind.is_custom:
                sub.end_date = max(end, sub.start_date)
            return added

        return with_persistence_retry(
            self._session, "regenerate_orders", write, retries=self._config.persistence_retries,
        )

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_subscription(self, subscription_id: UUID, actor_id: UUID) -> CancelResult:
        """
        Cancel a subscription and refund its future orders.

        Today's order is refunded only before the cutoff.  The refund is the
        sum of the persisted prices of the cancelled billable orders.

        Raises:
            AlreadyCancelledError: second cancel of the same subscription.
            InvalidTransitionError: subscription is completed.
        """
        now = self._clock.now()
        today = now.date()
        first_day = today
        if is_past_cutoff(today, now, config=self._config):
            first_day = today + timedelta(days=1)

        try:
            sub = self._load_subscription(subscription_id, for_update=True)
            if sub.status == SubscriptionStatus.CANCELLED.value:
                raise AlreadyCancelledError("subscription", str(subscription_id))
            SUBSCRIPTION_MACHINE.transition(sub.status_enum, SubscriptionStatus.CANCELLED)

            open_orders = self._orders(
                sub.id,
                OrderModel.order_date >= first_day,
                OrderModel.status.in_(_BILLABLE + (OrderStatus.FROZEN.value,)),
            )
            refundable = [o for o in open_orders if o.status in _BILLABLE]
            refund = refund_amount(o.price for o in refundable)

            for order in open_orders:
                ORDER_MACHINE.transition(order.status_enum, OrderStatus.CANCELLED)
                order.status = OrderStatus.CANCELLED.value
                order.updated_by_id = actor_id
            sub.status = SubscriptionStatus.CANCELLED.value
            sub.updated_by_id = actor_id
            self._recompute_totals(sub)
            self._session.flush()
            dto = sub.to_dto()
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("subscription_cancelled", extra={
            "subscription_id": str(subscription_id),
            "refund_amount": str(refund),
            "cancelled_order_count": len(refundable),
        })
        self._publish([self._event("subscription.cancelled", now, {
            "subscription_id": str(subscription_id),
            "employee_id": str(dto.employee_id),
            "refund_amount": str(refund),
        })])
        return CancelResult(subscription=dto, refund_amount=refund, cancelled_order_count=len(refundable))

    # =========================================================================
    # Pause / Resume
    # =========================================================================

    def pause_subscription(self, subscription_id: UUID, actor_id: UUID) -> LunchSubscription:
        """
        Pause a subscription; orders from tomorrow on become Paused.

        Raises:
            AlreadyPausedError, AlreadyCancelledError, InvalidTransitionError
        """
        try:
            dto = self._pause(subscription_id, actor_id)
            self._commit()
        except Exception:
            self._rollback()
            raise
        return dto

    def resume_subscription(self, subscription_id: UUID, actor_id: UUID) -> LunchSubscription:
        """
        Resume a paused subscription; paused orders from tomorrow on become Active.

        Raises:
            AlreadyActiveError, AlreadyCancelledError, InvalidTransitionError
        """
        try:
            dto = self._resume(subscription_id, actor_id)
            self._commit()
        except Exception:
            self._rollback()
            raise
        return dto

    def pause_subscriptions(
        self,
        subscription_ids: Sequence[UUID],
        actor_id: UUID,
    ) -> BulkOutcome[LunchSubscription]:
        """Pause many subscriptions, reporting per-id outcomes."""
        return self._bulk_status(subscription_ids, actor_id, self._pause, "pause_subscription")

    def resume_subscriptions(
        self,
        subscription_ids: Sequence[UUID],
        actor_id: UUID,
    ) -> BulkOutcome[LunchSubscription]:
        """Resume many subscriptions, reporting per-id outcomes."""
        return self._bulk_status(subscription_ids, actor_id, self._resume, "resume_subscription")

    def _bulk_status(self, subscription_ids, actor_id, change, operation) -> BulkOutcome[LunchSubscription]:
        try:
            outcome = isolate_each(
                self._session,
                unique_ids(subscription_ids),
                lambda sub_id: change(sub_id, actor_id),
                operation,
                context_field="subscription_id",
            )
            self._commit()
        except Exception:
            self._rollback()
            raise
        return outcome

    def _pause(self, subscription_id: UUID, actor_id: UUID) -> LunchSubscription:
        tomorrow = self._clock.today() + timedelta(days=1)
        sub = self._load_subscription(subscription_id, for_update=True)
        if sub.status == SubscriptionStatus.PAUSED.value:
            raise AlreadyPausedError(str(subscription_id))
        if sub.status == SubscriptionStatus.CANCELLED.value:
            raise AlreadyCancelledError("subscription", str(subscription_id))
        SUBSCRIPTION_MACHINE.transition(sub.status_enum, SubscriptionStatus.PAUSED)

        orders = self._orders(
            sub.id,
            OrderModel.order_date >= tomorrow,
            OrderModel.status == OrderStatus.ACTIVE.value,
        )
        for order in orders:
            order.status = ORDER_MACHINE.transition(OrderStatus.ACTIVE, OrderStatus.PAUSED).value
            order.updated_by_id = actor_id
        sub.status = SubscriptionStatus.PAUSED.value
        sub.updated_by_id = actor_id
        self._session.flush()

        logger.info("subscription_paused", extra={
            "subscription_id": str(subscription_id),
            "paused_order_count": len(orders),
        })
        return sub.to_dto()

    def _resume(self, subscription_id: UUID, actor_id: UUID) -> LunchSubscription:
        tomorrow = self._clock.today() + timedelta(days=1)
        sub = self._load_subscription(subscription_id, for_update=True)
        if sub.status == SubscriptionStatus.ACTIVE.value:
            raise AlreadyActiveError(str(subscription_id))
        if sub.status == SubscriptionStatus.CANCELLED.value:
            raise AlreadyCancelledError("subscription", str(subscription_id))
        SUBSCRIPTION_MACHINE.transition(sub.status_enum, SubscriptionStatus.ACTIVE)

        orders = self._orders(
            sub.id,
            OrderModel.order_date >= tomorrow,
            OrderModel.status == OrderStatus.PAUSED.value,
        )
        for order in orders:
            order.status = ORDER_MACHINE.transition(OrderStatus.PAUSED, OrderStatus.ACTIVE).value
            order.updated_by_id = actor_id
        sub.status = SubscriptionStatus.ACTIVE.value
        sub.updated_by_id = actor_id
        self._session.flush()

        logger.info("subscription_resumed", extra={
            "subscription_id": str(subscription_id),
            "resumed_order_count": len(orders),
        })
        return sub.to_dto()

    # =========================================================================
    # Freeze / Unfreeze
    # =========================================================================

    def freeze_order(self, order_id: UUID, reason: str | None, actor_id: UUID) -> FreezeResult:
        """
        Freeze one day and append a replacement day to the subscription.

        Raises:
            GuestOrderError: order has no employee.
            OrderNotModifiableError: order is past, closed or not Active.
            CutoffPassedError: order is today and the cutoff has passed.
            NoActiveSubscriptionError: subscription is not Active.
            FreezeQuotaExceededError: weekly quota used up.
        """
        now = self._clock.now()
        today = now.date()

        try:
            order = self._load_order(order_id, for_update=True)
            if order.employee_id is None or order.subscription_id is None:
                raise GuestOrderError(str(order_id))

            with LogContext.bind(employee_id=str(order.employee_id), subscription_id=str(order.subscription_id)):
                ensure_can_freeze(str(order_id), order.status_enum, order.order_date, today)
                if order.order_date == today:
                    ensure_before_cutoff(today, now, config=self._config)

                sub = self._load_subscription(order.subscription_id, for_update=True)
                if sub.status != SubscriptionStatus.ACTIVE.value:
                    raise NoActiveSubscriptionError(str(order.employee_id))

                quota = self._quota(order.employee_id, today)
                try:
                    ensure_freeze_available(quota, str(order.employee_id))
                except FreezeQuotaExceededError:
                    logger.info("freeze_rejected_quota", extra={
                        "order_id": str(order_id),
                        "used": quota.used,
                        "limit": quota.limit,
                    })
                    raise

                calendar = self._calendar(sub.employee_id)
                replacement = with_persistence_retry(
                    self._session,
                    "freeze_order",
                    lambda: self._freeze(order, sub, reason, now, calendar, actor_id),
                    retries=self._config.persistence_retries,
                )
                quota_after = self._quota(order.employee_id, today)
                result = FreezeResult(
                    order=order.to_dto(),
                    subscription=sub.to_dto(),
                    replacement_order=replacement.to_dto(),
                    quota=quota_after,
                )
                self._commit()
                logger.info("order_frozen", extra={
                    "order_id": str(order_id),
                    "order_date": result.order.order_date.isoformat(),
                    "end_date": result.subscription.end_date.isoformat(),
                    "remaining_freezes": quota_after.remaining,
                })
        except Exception:
            self._rollback()
            raise

        self._publish([self._event("order.frozen", now, {
            "order_id": str(order_id),
            "subscription_id": str(result.subscription.id),
            "end_date": result.subscription.end_date.isoformat(),
        })])
        return result

    def unfreeze_order(self, order_id: UUID, actor_id: UUID) -> UnfreezeResult:
        """
        Reactivate a frozen day and drop the day appended for it.

        Raises:
            GuestOrderError, OrderNotModifiableError, CutoffPassedError,
            NoActiveSubscriptionError
        """
        now = self._clock.now()
        today = now.date()

        try:
            order = self._load_order(order_id, for_update=True)
            if order.employee_id is None or order.subscription_id is None:
                raise GuestOrderError(str(order_id))

            ensure_can_unfreeze(str(order_id), order.status_enum, order.order_date, today)
            if order.order_date == today:
                ensure_before_cutoff(today, now, config=self._config)

            sub = self._load_subscription(order.subscription_id, for_update=True)
            if sub.status != SubscriptionStatus.ACTIVE.value:
                raise NoActiveSubscriptionError(str(order.employee_id))

            unfrozen = self._unfreeze(order, sub, today, actor_id)
            self._session.flush()
            result = UnfreezeResult(order=unfrozen, subscription=sub.to_dto())
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("order_unfrozen", extra={
            "order_id": str(order_id),
            "end_date": result.subscription.end_date.isoformat(),
        })
        self._publish([self._event("order.unfrozen", now, {
            "order_id": str(order_id),
            "subscription_id": str(result.subscription.id),
            "end_date": result.subscription.end_date.isoformat(),
        })])
        return result

    def freeze_period(
        self,
        employee_id: UUID,
        start: date,
        end: date,
        reason: str | None,
        actor_id: UUID,
    ) -> FreezePeriodResult:
        """
        Freeze the employee's Active orders in [start, end], in date order,
        until the weekly quota runs out.  Orders that cannot be frozen are
        reported as skipped with a reason code.

        Raises:
            InvalidDateRangeError: start after end.
            NoActiveSubscriptionError: employee has no Active subscription.
        """
        if start > end:
            raise InvalidDateRangeError(start, end, "start is after end")
        now = self._clock.now()
        today = now.date()

        try:
            sub = self._session.execute(
                select(LunchSubscriptionModel)
                .where(LunchSubscriptionModel.employee_id == employee_id)
                .where(LunchSubscriptionModel.status == SubscriptionStatus.ACTIVE.value)
                .with_for_update()
            ).scalar_one_or_none()
            if sub is None:
                raise NoActiveSubscriptionError(str(employee_id))

            calendar = self._calendar(employee_id)
            orders = self._orders(
                sub.id,
                OrderModel.order_date >= max(start, today),
                OrderModel.order_date <= end,
                OrderModel.status == OrderStatus.ACTIVE.value,
            )
            frozen: list[OrderModel] = []
            skipped: list[SkippedOrder] = []
            for order in orders:
                if order.order_date == today and is_past_cutoff(today, now, config=self._config):
                    skipped.append(SkippedOrder(order.id, order.order_date, "CUTOFF_PASSED"))
                    continue
                if not self._quota(employee_id, today).can_freeze:
                    skipped.append(SkippedOrder(order.id, order.order_date, FreezeQuotaExceededError.code))
                    continue
                with_persistence_retry(
                    self._session,
                    "freeze_order",
                    lambda o=order: self._freeze(o, sub, reason, now, calendar, actor_id),
                    retries=self._config.persistence_retries,
                )
                frozen.append(order)

            result = FreezePeriodResult(
                frozen=tuple(o.to_dto() for o in frozen),
                skipped=tuple(skipped),
                quota=self._quota(employee_id, today),
                end_date=sub.end_date,
            )
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("period_frozen", extra={
            "employee_id": str(employee_id),
            "frozen": len(result.frozen),
            "skipped": len(result.skipped),
        })
        self._publish([
            self._event("order.frozen", now, {
                "order_id": str(o.id),
                "subscription_id": str(sub.id),
                "end_date": result.end_date.isoformat(),
            })
            for o in result.frozen
        ])
        return result

    def _freeze(
        self,
        order: OrderModel,
        sub: LunchSubscriptionModel,
        reason: str | None,
        now: datetime,
        calendar: WorkingDayCalendar,
        actor_id: UUID,
    ) -> OrderModel:
        order.status = ORDER_MACHINE.transition(order.status_enum, OrderStatus.FROZEN).value
        order.frozen_at = now
        order.frozen_on = now.date()
        order.freeze_reason = reason
        order.updated_by_id = actor_id

        if sub.original_end_date is None:
            sub.original_end_date = sub.end_date
        # A frozen day left past end_date by an unfreeze keeps its date
        taken = {o.order_date for o in self._orders(sub.id, OrderModel.order_date > sub.end_date)}
        new_end = extended_end_date(sub.end_date, sub.recurrence, calendar)
        while new_end in taken:
            new_end = extended_end_date(new_end, sub.recurrence, calendar)
        replacement = self._new_order(sub, new_end, OrderStatus.ACTIVE, actor_id)
        replacement.combo_type = order.combo_type
        replacement.price = order.price
        self._session.add(replacement)

        order.replacement_order_id = replacement.id
        sub.end_date = new_end
        sub.frozen_days_count += 1
        sub.updated_by_id = actor_id
        return replacement

    def _unfreeze(
        self,
        order: OrderModel,
        sub: LunchSubscriptionModel,
        today: date,
        actor_id: UUID,
    ) -> Order:
        former_replacement_id = order.replacement_order_id
        order.status = ORDER_MACHINE.transition(order.status_enum, OrderStatus.ACTIVE).value
        order.frozen_at = None
        order.frozen_on = None
        order.freeze_reason = None
        order.replacement_order_id = None
        order.updated_by_id = actor_id
        self._session.flush()

        # Giving a day back removes the latest appended day still to come,
        # which is this order itself when it was appended for another freeze.
        appended = []
        if sub.original_end_date is not None:
            appended = self._orders(
                sub.id,
                OrderModel.order_date > sub.original_end_date,
                OrderModel.order_date >= today,
                OrderModel.status == OrderStatus.ACTIVE.value,
            )
        reported = None
        if appended:
            dropped = appended[-1]
            for other in self._orders(sub.id, OrderModel.replacement_order_id == dropped.id):
                if former_replacement_id in (other.id, dropped.id):
                    other.replacement_order_id = None
                else:
                    other.replacement_order_id = former_replacement_id
            if dropped.id == order.id:
                order.status = ORDER_MACHINE.transition(OrderStatus.ACTIVE, OrderStatus.CANCELLED).value
                reported = order.to_dto()
            self._session.delete(dropped)
            self._session.flush()

        sub.frozen_days_count = max(0, sub.frozen_days_count - 1)
        if sub.original_end_date is not None:
            counted = self._orders(sub.id, OrderModel.status.in_(_COUNTED))
            sub.end_date = max([sub.original_end_date, *(o.order_date for o in counted)])
            if sub.frozen_days_count == 0:
                sub.original_end_date = None
        sub.updated_by_id = actor_id
        self._recompute_totals(sub)
        return reported if reported is not None else order.to_dto()


    # =========================================================================
    # Settlement and renewal (driven by meal_batch)
    # =========================================================================

    def settle_orders(
        self,
        company_id: UUID | None,
        employee_id: UUID | None,
        day: date,
        actor_id: UUID,
    ) -> SettlementCharge:
        """
        Complete the Active orders of one employee (or one company's guest
        orders when ``employee_id`` is None) for ``day`` after its cutoff.

        Only Active orders are touched, so running it twice for the same
        day is a no-op the second time.
        """
        query = (
            select(OrderModel)
            .where(OrderModel.order_date == day)
            .where(OrderModel.status == OrderStatus.ACTIVE.value)
            .order_by(OrderModel.id)
        )
        if employee_id is not None:
            query = query.where(OrderModel.employee_id == employee_id)
        else:
            query = query.where(OrderModel.employee_id.is_(None))
            if company_id is not None:
                query = query.where(OrderModel.company_id == company_id)
        orders = self._session.execute(query.with_for_update()).scalars().all()

        try:
            for order in orders:
                order.status = ORDER_MACHINE.transition(OrderStatus.ACTIVE, OrderStatus.COMPLETED).value
                order.updated_by_id = actor_id
            self._session.flush()
            charge = SettlementCharge(
                company_id=company_id,
                employee_id=employee_id,
                day=day,
                order_count=len(orders),
                amount=refund_amount(o.price for o in orders),
                order_ids=tuple(o.id for o in orders),
            )
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("orders_settled", extra={
            "employee_id": str(employee_id) if employee_id else None,
            "day": day.isoformat(),
            "order_count": charge.order_count,
            "amount": str(charge.amount),
        })
        self._publish([self._event("orders.settled", self._clock.now(), {
            "company_id": str(company_id) if company_id else None,
            "employee_id": str(employee_id) if employee_id else None,
            "day": day.isoformat(),
            "order_count": charge.order_count,
            "amount": str(charge.amount),
        })])
        return charge

    def complete_and_renew(
        self,
        subscription_id: UUID,
        actor_id: UUID,
    ) -> tuple[LunchSubscription, LunchSubscription | None]:
        """
        Complete an Active subscription whose period ended and, if it
        auto-renews, create its successor with the same recurrence, combo
        and number of contracted days.

        The successor starts the day after the old end, or today when the
        job runs late.  CUSTOM subscriptions are completed but not renewed.

        Returns:
            (completed subscription, successor or None)
        """
        now = self._clock.now()
        today = now.date()

        try:
            sub = self._load_subscription(subscription_id, for_update=True)
            sub.status = SUBSCRIPTION_MACHINE.transition(
                sub.status_enum, SubscriptionStatus.COMPLETED,
            ).value
            sub.updated_by_id = actor_id
            self._session.flush()
            completed = sub.to_dto()

            renewed = None
            if sub.auto_renew and not sub.recurrence.kind.is_custom:
                renewed = self._renew(sub, max(sub.end_date + timedelta(days=1), today), actor_id)
            elif sub.auto_renew:
                logger.info("renewal_skipped_custom", extra={"subscription_id": str(sub.id)})
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("subscription_completed", extra={
            "subscription_id": str(subscription_id),
            "renewed_subscription_id": str(renewed.id) if renewed else None,
        })
        if renewed is not None:
            self._publish([self._event("subscription.renewed", now, {
                "subscription_id": str(renewed.id),
                "renewed_from_id": str(subscription_id),
            })])
        return completed, renewed

    def _renew(
        self,
        sub: LunchSubscriptionModel,
        start: date,
        actor_id: UUID,
    ) -> LunchSubscription | None:
        employee = self._directory.get(sub.employee_id)
        eligibility = check_eligibility(employee, BenefitKind.LUNCH, sub.recurrence, self._config)
        if not eligibility.is_valid:
            logger.info("renewal_skipped_ineligible", extra={
                "subscription_id": str(sub.id),
                "reason_code": eligibility.reason_code.value,
            })
            return None

        day_count = sub.total_days or self._config.min_subscription_days
        dates = extend_to_day_count(sub.recurrence, employee.working_days, start, day_count, self._config)
        model = self._materialize(
            employee=employee,
            recurrence=sub.recurrence,
            dates=dates,
            combo_type=sub.combo_type,
            price=daily_rate(BenefitKind.LUNCH, sub.combo_type, self._config),
            start=start,
            end=dates[-1],
            auto_renew=True,
            company_id=sub.company_id,
            actor_id=actor_id,
            renewed_from_id=sub.id,
        )
        return model.to_dto()

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _materialize(
        self,
        employee: EmployeeSnapshot,
        recurrence: Recurrence,
        dates: Sequence[date],
        combo_type: str,
        price: Decimal,
        start: date,
        end: date,
        auto_renew: bool,
        company_id: UUID | None,
        actor_id: UUID,
        renewed_from_id: UUID | None = None,
    ) -> LunchSubscriptionModel:
        """Write a subscription and all of its orders in one SAVEPOINT."""

        def write() -> LunchSubscriptionModel:
            sub = LunchSubscriptionModel(
                id=uuid4(),
                employee_id=employee.id,
                company_id=company_id,
                combo_type=combo_type,
                price=price,
                start_date=start,
                end_date=end,
                status=SubscriptionStatus.ACTIVE.value,
                total_days=len(dates),
                total_price=total_cost(len(dates), price),
                frozen_days_count=0,
                auto_renew=auto_renew,
                renewed_from_id=renewed_from_id,
                created_by_id=actor_id,
            )
            sub.recurrence = recurrence
            self._session.add(sub)
            self._session.flush()
            for day in dates:
                self._session.add(self._new_order(sub, day, OrderStatus.ACTIVE, actor_id))
            return sub

        model = with_persistence_retry(
            self._session,
            "create_subscription",
            write,
            retries=self._config.persistence_retries,
            benefit=(str(employee.id), BenefitKind.LUNCH.value),
        )
        logger.info("subscription_created", extra={
            "subscription_id": str(model.id),
            "employee_id": str(employee.id),
            "schedule_type": recurrence.kind.value,
            "day_count": len(dates),
            "total_price": str(model.total_price),
        })
        return model

    def _new_order(
        self,
        sub: LunchSubscriptionModel,
        day: date,
        status: OrderStatus,
        actor_id: UUID,
    ) -> OrderModel:
        return OrderModel(
            id=uuid4(),
            subscription_id=sub.id,
            employee_id=sub.employee_id,
            company_id=sub.company_id,
            order_date=day,
            combo_type=sub.combo_type,
            price=sub.price,
            status=status.value,
            created_by_id=actor_id,
        )

    def _resolve_period(self, start: date | None, end: date | None) -> tuple[date, date]:
        if start is None:
            raise InvalidDateRangeError(start, end, "start date is required")
        if end is None:
            end = add_months(start, self._config.default_subscription_months) - timedelta(days=1)
        if start > end:
            raise InvalidDateRangeError(start, end, "start is after end")
        return start, end

    def _ensure_open(self, sub: LunchSubscriptionModel) -> None:
        if sub.status == SubscriptionStatus.CANCELLED.value:
            raise AlreadyCancelledError("subscription", str(sub.id))
        if not sub.status_enum.is_open:
            raise InvalidPatchError("status", f"subscription is {sub.status}")

    def _load_subscription(self, subscription_id: UUID, for_update: bool = False) -> LunchSubscriptionModel:
        query = select(LunchSubscriptionModel).where(LunchSubscriptionModel.id == subscription_id)
        if for_update:
            query = query.with_for_update()
        model = self._session.execute(query).scalar_one_or_none()
        if model is None:
            raise SubscriptionNotFoundError(str(subscription_id))
        return model

    def _load_order(self, order_id: UUID, for_update: bool = False) -> OrderModel:
        query = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            query = query.with_for_update()
        model = self._session.execute(query).scalar_one_or_none()
        if model is None:
            raise OrderNotFoundError(str(order_id))
        return model

    def _orders(self, subscription_id: UUID, *conditions) -> list[OrderModel]:
        query = select(OrderModel).where(OrderModel.subscription_id == subscription_id)
        for condition in conditions:
            query = query.where(condition)
        return list(self._session.execute(query.order_by(OrderModel.order_date)).scalars().all())

    def _future_billable(self, subscription_id: UUID, first_day: date) -> list[OrderModel]:
        return self._orders(
            subscription_id,
            OrderModel.order_date >= first_day,
            OrderModel.status.in_(_BILLABLE),
        )

    def _recompute_totals(self, sub: LunchSubscriptionModel) -> None:
        self._session.flush()
        counted = self._orders(sub.id, OrderModel.status.in_(_COUNTED))
        sub.total_days = len(counted)
        sub.total_price = refund_amount(o.price for o in counted)

    def _quota(self, employee_id: UUID, today: date) -> FreezeQuota:
        frozen_on = self._session.execute(
            select(OrderModel.frozen_on)
            .where(OrderModel.employee_id == employee_id)
            .where(OrderModel.status == OrderStatus.FROZEN.value)
            .where(OrderModel.frozen_on.is_not(None))
        ).scalars().all()
        return freeze_quota(frozen_on, today, self._config)

    def _calendar(self, employee_id: UUID) -> WorkingDayCalendar:
        return self._directory.get(employee_id).calendar(self._config)

    def _event(self, event_type: str, now: datetime, payload: dict) -> BenefitEvent:
        return BenefitEvent(event_type=event_type, occurred_at=now, payload=payload)

    def _publish(self, events: Iterable[BenefitEvent]) -> None:
        for event in events:
            self._events.publish(event)

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()
        else:
            self._session.flush()

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()


__all__ = ["LunchSubscriptionService"]
