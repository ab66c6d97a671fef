"""
Employee ORM Persistence Model (``meal_modules.employees.orm``).

Responsibility:
    Persist the employee fields the scheduling engine depends on and
    convert them to ``EmployeeSnapshot``.

Invariants enforced:
    - Enum fields stored as String(20) containing the enum .value string.
    - ``working_days`` stored as a comma-separated list of portal weekdays
      (0=Sunday .. 6=Saturday); NULL means "use the configured default".
    - ``service_type`` NULL means the employee is not configured yet.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from meal_engines.eligibility import BenefitKind, EmployeeSnapshot, InviteStatus, ShiftType
from meal_kernel.db.base import TrackedBase


def encode_working_days(days) -> str | None:
    if not days:
        return None
    return ",".join(str(d) for d in sorted(days))


def decode_working_days(value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    return frozenset(int(part) for part in value.split(",") if part.strip())


# ---------------------------------------------------------------------------
# EmployeeModel
# ---------------------------------------------------------------------------

class EmployeeModel(TrackedBase):
    """
    ORM model for an employee of a client company.

    Guarantees:
        - ``invite_status`` and ``shift_type`` store enum .value strings.
        - Active benefit ids are not stored here; they are derived from the
          open subscription and compensation rows.
    """

    __tablename__ = "employees"

    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    invite_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InviteStatus.ACCEPTED.value,
    )
    service_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    shift_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ShiftType.DAY.value,
    )
    working_days: Mapped[str | None] = mapped_column(String(20), nullable=True)

    __table_args__ = (
        Index("idx_employee_company", "company_id"),
        Index("idx_employee_company_active", "company_id", "is_active"),
    )

    def to_dto(
        self,
        active_lunch_subscription_id: UUID | None = None,
        active_compensation_id: UUID | None = None,
    ) -> EmployeeSnapshot:
        return EmployeeSnapshot(
            id=self.id,
            is_active=self.is_active,
            invite_status=InviteStatus(self.invite_status),
            service_type=BenefitKind(self.service_type) if self.service_type else None,
            shift_type=ShiftType(self.shift_type),
            working_days=decode_working_days(self.working_days),
            active_lunch_subscription_id=active_lunch_subscription_id,
            active_compensation_id=active_compensation_id,
            full_name=self.full_name,
            company_id=self.company_id,
        )

    @classmethod
    def from_dto(cls, dto: EmployeeSnapshot, created_by_id: UUID) -> "EmployeeModel":
        return cls(
            id=dto.id,
            company_id=dto.company_id,
            full_name=dto.full_name,
            is_active=dto.is_active,
            invite_status=dto.invite_status.value,
            service_type=dto.service_type.value if dto.service_type else None,
            shift_type=dto.shift_type.value,
            working_days=encode_working_days(dto.working_days),
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<EmployeeModel {self.id}: {self.full_name} ({self.service_type})>"
