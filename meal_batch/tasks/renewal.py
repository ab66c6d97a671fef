"""
Batch tasks: completion and auto-renewal of ended benefits.

Picks Active subscriptions and compensations whose ``end_date`` is
before the run date, completes them and, when ``auto_renew`` is set,
creates the successor through the module service.
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


def _renewal_result(completed, renewed) -> BatchTaskResult:
    return BatchTaskResult(
        status=BatchItemStatus.SUCCEEDED,
        result_data={
            "completed_id": str(completed.id),
            "renewed_id": str(renewed.id) if renewed else None,
        },
    )


class LunchRenewalTask:
    """Complete ended lunch subscriptions and renew the auto-renewing ones."""

    @property
    def task_type(self) -> str:
        return "lunch.auto_renewal"

    @property
    def description(self) -> str:
        return "Complete ended lunch subscriptions and renew auto-renewing ones"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from meal_engines.lifecycle import SubscriptionStatus
        from meal_modules.lunch.orm import LunchSubscriptionModel

        models = session.execute(
            select(LunchSubscriptionModel)
            .where(LunchSubscriptionModel.status == SubscriptionStatus.ACTIVE.value)
            .where(LunchSubscriptionModel.end_date < as_of.date())
            .order_by(LunchSubscriptionModel.end_date, LunchSubscriptionModel.id)
        ).scalars().all()
        return tuple(
            BatchItemInput(item_index=i, item_key=str(m.id), payload={"subscription_id": str(m.id)})
            for i, m in enumerate(models)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from meal_modules.lunch.service import LunchSubscriptionService

        service = LunchSubscriptionService(session, clock=FixedClock(as_of), auto_commit=False)
        try:
            completed, renewed = service.complete_and_renew(
                optional_uuid(item.payload["subscription_id"]),
                actor_id=actor_of(parameters),
            )
        except MealKernelError as exc:
            return BatchTaskResult.failed(exc)
        return _renewal_result(completed, renewed)


class CompensationRenewalTask:
    """Complete ended compensations and renew the auto-renewing ones."""

    @property
    def task_type(self) -> str:
        return "compensation.auto_renewal"

    @property
    def description(self) -> str:
        return "Complete ended compensations and renew auto-renewing ones"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from meal_engines.lifecycle import SubscriptionStatus
        from meal_modules.compensation.orm import CompensationModel

        models = session.execute(
            select(CompensationModel)
            .where(CompensationModel.status == SubscriptionStatus.ACTIVE.value)
            .where(CompensationModel.end_date < as_of.date())
            .order_by(CompensationModel.end_date, CompensationModel.id)
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
            completed, renewed = service.complete_and_renew(
                optional_uuid(item.payload["compensation_id"]),
                actor_id=actor_of(parameters),
            )
        except MealKernelError as exc:
            return BatchTaskResult.failed(exc)
        return _renewal_result(completed, renewed)
