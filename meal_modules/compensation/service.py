"""
CompensationService -- daily allowance budgets and their spending.

Contract:
    Creates, edits and cancels compensations, charges purchases against
    them and closes days for carry-over.  All money math lives in
    ``meal_engines.compensation``; this service loads state, calls the
    engine and persists the outcome.
Architecture: Modules layer. Imports from meal_engines, meal_kernel and
    the employee directory.
Invariants:
    - ``used_amount`` is the sum of ``company_pays`` over transactions.
    - ``total_budget`` never drops below ``used_amount``.
    - ``close_day`` is applied at most once per day (``last_closed_date``).
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from meal_config import get_active_config
from meal_config.schema import BusinessConfig
from meal_engines.compensation import (
    close_day,
    compensation_days,
    ensure_within_budget,
    split_transaction,
    unspent_budget,
    validate_budget_change,
)
from meal_engines.eligibility import BenefitKind, EmployeeSnapshot, check_eligibility
from meal_engines.lifecycle import SUBSCRIPTION_MACHINE, SubscriptionStatus
from meal_engines.pricing import auto_total_budget, daily_rate
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.domain.dates import add_months
from meal_kernel.exceptions import (
    AlreadyCancelledError,
    BelowMinimumDaysError,
    CompensationNotFoundError,
    EmployeeNotFoundError,
    InvalidDateRangeError,
    InvalidPatchError,
    StartDateInPastError,
)
from meal_kernel.logging_config import get_logger
from meal_modules._bulk import BulkItemError, isolate_each
from meal_modules._persistence import with_persistence_retry
from meal_modules.compensation.models import (
    BulkCompensationResult,
    Compensation,
    CompensationCancelResult,
    CompensationPatch,
    CompensationRequest,
    TransactionResult,
)
from meal_modules.compensation.orm import CompensationModel, CompensationTransactionModel
from meal_modules.employees.directory import EmployeeDirectory
from meal_modules.events import BenefitEvent, EventSink, NullEventSink

logger = get_logger("modules.compensation.service")

_ZERO = Decimal("0")


class CompensationService:
    """
    Orchestrates compensation budgets.

    Guarantees:
        - Session is committed only on success; otherwise rolled back
          (unless ``auto_commit=False``, then the caller owns it).
        - A transaction never pushes spend past the budget unless
          ``allow_budget_overdraft`` is configured.
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

    def get_compensation(self, compensation_id: UUID) -> Compensation:
        return self._load(compensation_id).to_dto()

    def list_transactions(self, compensation_id: UUID) -> list:
        self._load(compensation_id)
        rows = self._session.execute(
            select(CompensationTransactionModel)
            .where(CompensationTransactionModel.compensation_id == compensation_id)
            .order_by(CompensationTransactionModel.transaction_date, CompensationTransactionModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_compensations(self, request: CompensationRequest, actor_id: UUID) -> BulkCompensationResult:
        """
        Create one compensation per target employee.

        Each employee's day count comes from their own calendar, so a budget
        left to default is sized per employee.

        Raises:
            StartDateInPastError: start is before today.
        """
        now = self._clock.now()
        today = now.date()
        cfg = self._config

        start = request.start_date
        if start < today:
            raise StartDateInPastError(start, today)
        end = request.end_date or add_months(start, cfg.default_subscription_months) - timedelta(days=1)
        limit = daily_rate(BenefitKind.COMPENSATION, request.daily_limit, cfg)

        snapshots = self._directory.get_many(request.employee_ids)
        events: list[BenefitEvent] = []

        def create_one(employee_id: UUID):
            employee = snapshots.get(employee_id)
            if employee is None:
                raise EmployeeNotFoundError(str(employee_id))
            eligibility = check_eligibility(employee, BenefitKind.COMPENSATION, config=cfg)
            if not eligibility.is_valid:
                return BulkItemError(employee_id, eligibility.reason_code.value, eligibility.message)

            days = compensation_days(employee.working_days, start, end, cfg)
            if days == 0:
                error = BelowMinimumDaysError(days, 1)
                return BulkItemError(employee_id, error.code, str(error))

            budget = request.total_budget or auto_total_budget(days, limit)
            model = self._materialize(
                employee, limit, budget, start, end, days,
                request.carry_over, request.auto_renew,
                request.company_id or employee.company_id, actor_id,
            )
            dto = model.to_dto()
            events.append(BenefitEvent("compensation.created", now, {
                "compensation_id": str(dto.id),
                "employee_id": str(dto.employee_id),
                "total_budget": str(dto.total_budget),
            }))
            return dto

        try:
            outcome = isolate_each(self._session, request.employee_ids, create_one, "create_compensation")
            self._commit()
        except Exception:
            self._rollback()
            raise

        result = BulkCompensationResult.from_outcome(outcome)
        logger.info("bulk_create_completed", extra={
            "kind": BenefitKind.COMPENSATION.value,
            "created_count": len(result.created),
            "failed": len(result.errors),
            "total_budget": str(result.total_budget),
        })
        self._publish(events)
        return result

    def _materialize(
        self,
        employee: EmployeeSnapshot,
        daily_limit: Decimal,
        total_budget: Decimal,
        start: date,
        end: date,
        days: int,
        carry_over: bool,
        auto_renew: bool,
        company_id: UUID | None,
        actor_id: UUID,
        renewed_from_id: UUID | None = None,
    ) -> CompensationModel:
        def write() -> CompensationModel:
            model = CompensationModel(
                id=uuid4(),
                employee_id=employee.id,
                company_id=company_id,
                daily_limit=daily_limit,
                total_budget=total_budget,
                used_amount=_ZERO,
                accumulated_balance=_ZERO,
                carry_over=carry_over,
                auto_renew=auto_renew,
                start_date=start,
                end_date=end,
                status=SubscriptionStatus.ACTIVE.value,
                total_days=days,
                renewed_from_id=renewed_from_id,
                created_by_id=actor_id,
            )
            self._session.add(model)
            return model

        model = with_persistence_retry(
            self._session,
            "create_compensation",
            write,
            retries=self._config.persistence_retries,
            benefit=(str(employee.id), BenefitKind.COMPENSATION.value),
        )
        logger.info("compensation_created", extra={
            "compensation_id": str(model.id),
            "employee_id": str(employee.id),
            "day_count": days,
            "total_budget": str(total_budget),
        })
        return model

    # -------------------------------------------------------------------------
    # Update / cancel
    # -------------------------------------------------------------------------

    def update_compensation(
        self,
        compensation_id: UUID,
        patch: CompensationPatch,
        actor_id: UUID,
    ) -> Compensation:
        """
        Raises:
            AlreadyCancelledError: compensation is cancelled.
            InvalidPatchError: closed compensation, budget below spend, or
                end date before start.
        """
        try:
            model = self._load(compensation_id, for_update=True)
            self._ensure_open(model)

            if patch.daily_limit is not None:
                model.daily_limit = daily_rate(BenefitKind.COMPENSATION, patch.daily_limit, self._config)
            if patch.end_date is not None:
                if patch.end_date < model.start_date:
                    raise InvalidDateRangeError(model.start_date, patch.end_date, "start is after end")
                model.end_date = patch.end_date
                employee = self._directory.get(model.employee_id)
                model.total_days = compensation_days(
                    employee.working_days, model.start_date, model.end_date, self._config,
                )
            if patch.total_budget is not None:
                model.total_budget = validate_budget_change(patch.total_budget, model.used_amount)
            if patch.carry_over is not None:
                model.carry_over = patch.carry_over
            if patch.auto_renew is not None:
                model.auto_renew = patch.auto_renew
            model.updated_by_id = actor_id
            self._session.flush()
            dto = model.to_dto()
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("compensation_updated", extra={
            "compensation_id": str(compensation_id),
            "daily_limit": str(dto.daily_limit),
            "total_budget": str(dto.total_budget),
        })
        return dto

    def cancel_compensation(self, compensation_id: UUID, actor_id: UUID) -> CompensationCancelResult:
        """
        Cancel and refund the unspent budget.

        Raises:
            AlreadyCancelledError: second cancel.
            InvalidTransitionError: compensation is completed.
        """
        now = self._clock.now()
        try:
            model = self._load(compensation_id, for_update=True)
            if model.status == SubscriptionStatus.CANCELLED.value:
                raise AlreadyCancelledError("compensation", str(compensation_id))
            model.status = SUBSCRIPTION_MACHINE.transition(
                SubscriptionStatus(model.status), SubscriptionStatus.CANCELLED,
            ).value
            refund = unspent_budget(model.total_budget, model.used_amount)
            model.updated_by_id = actor_id
            self._session.flush()
            dto = model.to_dto()
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("compensation_cancelled", extra={
            "compensation_id": str(compensation_id),
            "refund_amount": str(refund),
        })
        self._publish([BenefitEvent("compensation.cancelled", now, {
            "compensation_id": str(compensation_id),
            "employee_id": str(dto.employee_id),
            "refund_amount": str(refund),
        })])
        return CompensationCancelResult(compensation=dto, refund_amount=refund)

    # -------------------------------------------------------------------------
    # Spending
    # -------------------------------------------------------------------------

    def record_transaction(
        self,
        compensation_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        on: date | None = None,
        description: str | None = None,
    ) -> TransactionResult:
        """
        Charge a purchase and split it between company and employee.

        Raises:
            NonPositiveRateError: amount <= 0.
            InvalidPatchError: compensation is not Active.
            InvalidDateRangeError: ``on`` falls outside its period.
            BudgetExceededError: company share exceeds the remaining budget.
        """
        now = self._clock.now()
        day = on or now.date()

        try:
            model = self._load(compensation_id, for_update=True)
            if model.status != SubscriptionStatus.ACTIVE.value:
                raise InvalidPatchError("status", f"compensation is {model.status}")
            if not model.start_date <= day <= model.end_date:
                raise InvalidDateRangeError(model.start_date, model.end_date, f"{day} is outside the period")

            split = split_transaction(
                amount,
                daily_limit=model.daily_limit,
                used_on_day=self._company_paid_on(model.id, day),
                accumulated_balance=model.accumulated_balance,
                carry_over=model.carry_over,
            )
            ensure_within_budget(
                str(model.id),
                model.total_budget,
                model.used_amount,
                split.company_pays,
                self._config.allow_budget_overdraft,
            )

            txn = CompensationTransactionModel(
                id=uuid4(),
                compensation_id=model.id,
                transaction_date=day,
                amount=split.amount,
                company_pays=split.company_pays,
                employee_pays=split.employee_pays,
                drawn_from_balance=split.drawn_from_balance,
                description=description,
                created_by_id=actor_id,
            )
            self._session.add(txn)
            model.used_amount = model.used_amount + split.company_pays
            model.accumulated_balance = model.accumulated_balance - split.drawn_from_balance
            model.updated_by_id = actor_id
            self._session.flush()
            result = TransactionResult(compensation=model.to_dto(), transaction=txn.to_dto())
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("compensation_transaction_recorded", extra={
            "compensation_id": str(compensation_id),
            "day": day.isoformat(),
            "amount": str(split.amount),
            "company_pays": str(split.company_pays),
            "employee_pays": str(split.employee_pays),
        })
        self._publish([BenefitEvent("compensation.transaction", now, {
            "compensation_id": str(compensation_id),
            "transaction_id": str(result.transaction.id),
            "company_pays": str(split.company_pays),
            "employee_pays": str(split.employee_pays),
        })])
        return result

    def close_day(self, compensation_id: UUID, day: date, actor_id: UUID) -> Compensation:
        """
        Roll the unused allowance of ``day`` into the balance (carry-over
        only).  Closing the same or an earlier day again changes nothing.
        """
        try:
            model = self._load(compensation_id, for_update=True)
            if model.last_closed_date is not None and day <= model.last_closed_date:
                logger.debug("compensation_day_already_closed", extra={
                    "compensation_id": str(compensation_id),
                    "day": day.isoformat(),
                })
                return model.to_dto()

            before = model.accumulated_balance
            model.accumulated_balance = close_day(
                model.daily_limit,
                self._company_paid_on(model.id, day),
                model.accumulated_balance,
                model.carry_over,
            )
            model.last_closed_date = day
            model.updated_by_id = actor_id
            self._session.flush()
            dto = model.to_dto()
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("compensation_day_closed", extra={
            "compensation_id": str(compensation_id),
            "day": day.isoformat(),
            "rolled_over": str(dto.accumulated_balance - before),
        })
        return dto

    # -------------------------------------------------------------------------
    # Renewal (driven by meal_batch)
    # -------------------------------------------------------------------------

    def complete_and_renew(
        self,
        compensation_id: UUID,
        actor_id: UUID,
    ) -> tuple[Compensation, Compensation | None]:
        """
        Complete an ended compensation; renew it for the same period
        length when ``auto_renew`` is set.  The successor starts fresh:
        no spend and no carried balance.
        """
        today = self._clock.today()
        try:
            model = self._load(compensation_id, for_update=True)
            model.status = SUBSCRIPTION_MACHINE.transition(
                SubscriptionStatus(model.status), SubscriptionStatus.COMPLETED,
            ).value
            model.updated_by_id = actor_id
            self._session.flush()
            completed = model.to_dto()

            renewed = None
            if model.auto_renew:
                renewed = self._renew(model, today, actor_id)
            self._commit()
        except Exception:
            self._rollback()
            raise

        logger.info("compensation_completed", extra={
            "compensation_id": str(compensation_id),
            "renewed_compensation_id": str(renewed.id) if renewed else None,
        })
        return completed, renewed

    def _renew(self, model: CompensationModel, today: date, actor_id: UUID) -> Compensation | None:
        employee = self._directory.get(model.employee_id)
        eligibility = check_eligibility(employee, BenefitKind.COMPENSATION, config=self._config)
        if not eligibility.is_valid:
            logger.info("renewal_skipped_ineligible", extra={
                "compensation_id": str(model.id),
                "reason_code": eligibility.reason_code.value,
            })
            return None

        length = model.end_date - model.start_date
        start = max(model.end_date + timedelta(days=1), today)
        end = start + length
        days = compensation_days(employee.working_days, start, end, self._config)
        successor = self._materialize(
            employee,
            model.daily_limit,
            auto_total_budget(days, model.daily_limit) if days else model.total_budget,
            start,
            end,
            days,
            model.carry_over,
            True,
            model.company_id,
            actor_id,
            renewed_from_id=model.id,
        )
        return successor.to_dto()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _load(self, compensation_id: UUID, for_update: bool = False) -> CompensationModel:
        query = select(CompensationModel).where(CompensationModel.id == compensation_id)
        if for_update:
            query = query.with_for_update()
        model = self._session.execute(query).scalar_one_or_none()
        if model is None:
            raise CompensationNotFoundError(str(compensation_id))
        return model

    def _ensure_open(self, model: CompensationModel) -> None:
        if model.status == SubscriptionStatus.CANCELLED.value:
            raise AlreadyCancelledError("compensation", str(model.id))
        if not SubscriptionStatus(model.status).is_open:
            raise InvalidPatchError("status", f"compensation is {model.status}")

    def _company_paid_on(self, compensation_id: UUID, day: date) -> Decimal:
        paid = self._session.execute(
            select(func.coalesce(func.sum(CompensationTransactionModel.company_pays), 0))
            .where(CompensationTransactionModel.compensation_id == compensation_id)
            .where(CompensationTransactionModel.transaction_date == day)
        ).scalar_one()
        return Decimal(str(paid))

    def _publish(self, events) -> None:
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
