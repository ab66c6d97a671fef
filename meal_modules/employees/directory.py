"""
Employee Directory (``meal_modules.employees.directory``).

Responsibility
--------------
Read side of the employee collaborator.  Loads ``EmployeeModel`` rows and
resolves each employee's open lunch subscription and open compensation,
so the engines get a complete ``EmployeeSnapshot``.

Also offers ``register`` / ``update`` for tooling and tests; employee CRUD
itself belongs to the surrounding portal.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from meal_engines.eligibility import EmployeeSnapshot
from meal_engines.lifecycle import SubscriptionStatus
from meal_kernel.exceptions import EmployeeNotFoundError
from meal_kernel.logging_config import get_logger
from meal_modules.compensation.orm import CompensationModel
from meal_modules.employees.orm import EmployeeModel, encode_working_days
from meal_modules.lunch.orm import LunchSubscriptionModel

logger = get_logger("modules.employees.directory")

_OPEN = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAUSED.value)


class EmployeeDirectory:
    """
    Builds ``EmployeeSnapshot`` values from storage.

    Non-goals
    ---------
    * Does NOT commit; callers own the transaction.
    """

    def __init__(self, session: Session):
        self._session = session

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, employee_id: UUID) -> EmployeeSnapshot:
        """
        Raises:
            EmployeeNotFoundError: unknown id.
        """
        found = self.get_many([employee_id])
        if employee_id not in found:
            raise EmployeeNotFoundError(str(employee_id))
        return found[employee_id]

    def get_many(self, employee_ids: Iterable[UUID]) -> dict[UUID, EmployeeSnapshot]:
        """Snapshots keyed by id; unknown ids are simply absent."""
        ids = list(employee_ids)
        if not ids:
            return {}
        models = self._session.execute(
            select(EmployeeModel).where(EmployeeModel.id.in_(ids))
        ).scalars().all()
        return self._snapshots(models)

    def list_for_company(self, company_id: UUID) -> list[EmployeeSnapshot]:
        """Every employee of a company, the input of the bulk targeting pipeline."""
        models = self._session.execute(
            select(EmployeeModel)
            .where(EmployeeModel.company_id == company_id)
            .order_by(EmployeeModel.full_name, EmployeeModel.id)
        ).scalars().all()
        snapshots = self._snapshots(models)
        return [snapshots[m.id] for m in models]

    def _snapshots(self, models: Iterable[EmployeeModel]) -> dict[UUID, EmployeeSnapshot]:
        models = list(models)
        ids = [m.id for m in models]
        if not ids:
            return {}
        lunch = dict(self._session.execute(
            select(LunchSubscriptionModel.employee_id, LunchSubscriptionModel.id)
            .where(LunchSubscriptionModel.employee_id.in_(ids))
            .where(LunchSubscriptionModel.status.in_(_OPEN))
        ).all())
        compensation = dict(self._session.execute(
            select(CompensationModel.employee_id, CompensationModel.id)
            .where(CompensationModel.employee_id.in_(ids))
            .where(CompensationModel.status.in_(_OPEN))
        ).all())
        return {
            m.id: m.to_dto(
                active_lunch_subscription_id=lunch.get(m.id),
                active_compensation_id=compensation.get(m.id),
            )
            for m in models
        }

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def register(self, snapshot: EmployeeSnapshot, actor_id: UUID) -> EmployeeSnapshot:
        """Persist a new employee (active benefit ids on the snapshot are ignored)."""
        model = EmployeeModel.from_dto(snapshot, created_by_id=actor_id)
        self._session.add(model)
        self._session.flush()
        logger.info(
            "employee_registered",
            extra={"employee_id": str(model.id), "service_type": model.service_type},
        )
        return replace(snapshot, active_lunch_subscription_id=None, active_compensation_id=None)

    def update(self, snapshot: EmployeeSnapshot, actor_id: UUID) -> EmployeeSnapshot:
        """Overwrite the scheduling fields of an existing employee."""
        model = self._session.get(EmployeeModel, snapshot.id)
        if model is None:
            raise EmployeeNotFoundError(str(snapshot.id))
        model.company_id = snapshot.company_id
        model.full_name = snapshot.full_name
        model.is_active = snapshot.is_active
        model.invite_status = snapshot.invite_status.value
        model.service_type = snapshot.service_type.value if snapshot.service_type else None
        model.shift_type = snapshot.shift_type.value
        model.working_days = encode_working_days(snapshot.working_days)
        model.updated_by_id = actor_id
        self._session.flush()
        return self.get(snapshot.id)
