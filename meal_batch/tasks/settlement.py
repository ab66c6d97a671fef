"""
Batch tasks: end-of-day settlement.

``lunch.daily_settlement`` completes the day's Active orders once the
cutoff has passed, one item per employee (guest orders grouped per
company), and reports a ``SettlementCharge`` per item.
``compensation.close_day`` rolls each carry-over compensation's unused
allowance into its balance.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from meal_batch.domain.types import BatchItemStatus
from meal_batch.tasks.base import BatchItemInput, BatchTaskResult, actor_of, optional_uuid
from meal_kernel.domain.clock import FixedClock
from meal_kernel.exceptions import MealKernelError
from meal_kernel.logging_config import get_logger

logger = get_logger("batch.tasks.settlement")


class DailySettlementTask:
    """Complete today's Active lunch orders after the cutoff."""

    @property
    def task_type(self) -> str:
        return "lunch.daily_settlement"

    @property
    def description(self) -> str:
        return "Complete the day's active lunch orders after the cutoff"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from meal_config import get_active_config
        from meal_engines.cutoff import is_past_cutoff
        from meal_engines.lifecycle import OrderStatus
        from meal_modules.lunch.orm import OrderModel

        day = as_of.date()
        if not is_past_cutoff(day, as_of, parameters.get("cutoff_time"), get_active_config()):
            logger.info("settlement_before_cutoff", extra={"day": day.isoformat()})
            return ()

        rows = session.execute(
            select(OrderModel.company_id, OrderModel.employee_id)
            .where(OrderModel.order_date == day)
            .where(OrderModel.status == OrderStatus.ACTIVE.value)
            .distinct()
        ).all()
        keys = sorted(
            {(str(c) if c else None, str(e) if e else None) for c, e in rows},
            key=lambda k: (k[1] or "", k[0] or ""),
        )
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=employee_id or f"guest:{company_id}",
                payload={"company_id": company_id, "employee_id": employee_id, "day": day.isoformat()},
            )
            for i, (company_id, employee_id) in enumerate(keys)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from meal_modules.lunch.service import LunchSubscriptionService

        service = LunchSubscriptionService(
            session, clock=FixedClock(as_of), auto_commit=False,
        )
        try:
            charge = service.settle_orders(
                company_id=optional_uuid(item.payload.get("company_id")),
                employee_id=optional_uuid(item.payload.get("employee_id")),
                day=as_of.date(),
                actor_id=actor_of(parameters),
            )
        except MealKernelError as exc:
            return BatchTaskResult.failed(exc)

        if charge.order_count == 0:
            return BatchTaskResult(status=BatchItemStatus.SKIPPED)
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "company_id": item.payload.get("company_id"),
                "employee_id": item.payload.get("employee_id"),
                "order_count": charge.order_count,
                "amount": str(charge.amount),
            },
        )


class CompensationDayCloseTask:
    """Roll unused daily allowance into the balance of carry-over compensations."""

    @property
    def task_type(self) -> str:
        return "compensation.close_day"

    @property
    def description(self) -> str:
        return "Close the day for carry-over compensations"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from meal_engines.lifecycle import SubscriptionStatus
        from meal_modules.compensation.orm import CompensationModel

        day = as_of.date()
        models = session.execute(
            select(CompensationModel)
            .where(CompensationModel.status == SubscriptionStatus.ACTIVE.value)
            .where(CompensationModel.carry_over.is_(True))
            .where(CompensationModel.start_date <= day)
            .where(CompensationModel.end_date >= day)
            .order_by(CompensationModel.id)
        ).scalars().all()
        return tuple(
            BatchItemInput(item_index=i, item_key=str(m.id), payload={"compensation_id": str(m.id)})
            for i, m in enumerate(models)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from meal_modules.compensation.service import CompensationService

        service = CompensationService(session, clock=FixedClock(as_of), auto_commit=False)
        try:
            compensation = service.close_day(
                optional_uuid(item.payload["compensation_id"]),
                as_of.date(),
                actor_id=actor_of(parameters),
            )
        except MealKernelError as exc:
            return BatchTaskResult.failed(exc)
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={"accumulated_balance": str(compensation.accumulated_balance)},
        )
