"""
Compensation ORM Persistence Models (``meal_modules.compensation.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the frozen DTOs defined in
    ``meal_modules.compensation.models``.

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(18,2)) -- NEVER float.
    - At most one open (Active or Paused) compensation per employee:
      partial unique index ``uq_compensation_open_employee``.
    - ``used_amount`` equals the sum of ``company_pays`` over the
      compensation's transactions.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from meal_engines.lifecycle import SubscriptionStatus
from meal_kernel.db.base import TrackedBase

_OPEN_STATUSES = "status IN ('Active', 'Paused')"


# ---------------------------------------------------------------------------
# CompensationModel
# ---------------------------------------------------------------------------

class CompensationModel(TrackedBase):
    """ORM model for ``Compensation``."""

    __tablename__ = "compensations"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    daily_limit: Mapped[Decimal] = mapped_column(nullable=False)
    total_budget: Mapped[Decimal] = mapped_column(nullable=False)
    used_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    accumulated_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    carry_over: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_closed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    renewed_from_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index(
            "uq_compensation_open_employee",
            "employee_id",
            unique=True,
            sqlite_where=text(_OPEN_STATUSES),
            postgresql_where=text(_OPEN_STATUSES),
        ),
        Index("idx_compensation_status_end", "status", "end_date"),
    )

    def to_dto(self):
        from meal_modules.compensation.models import Compensation
        return Compensation(
            id=self.id,
            employee_id=self.employee_id,
            company_id=self.company_id,
            daily_limit=self.daily_limit,
            total_budget=self.total_budget,
            used_amount=self.used_amount,
            accumulated_balance=self.accumulated_balance,
            carry_over=self.carry_over,
            auto_renew=self.auto_renew,
            start_date=self.start_date,
            end_date=self.end_date,
            status=SubscriptionStatus(self.status),
            total_days=self.total_days,
            last_closed_date=self.last_closed_date,
            renewed_from_id=self.renewed_from_id,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "CompensationModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            company_id=dto.company_id,
            daily_limit=dto.daily_limit,
            total_budget=dto.total_budget,
            used_amount=dto.used_amount,
            accumulated_balance=dto.accumulated_balance,
            carry_over=dto.carry_over,
            auto_renew=dto.auto_renew,
            start_date=dto.start_date,
            end_date=dto.end_date,
            status=dto.status.value,
            total_days=dto.total_days,
            last_closed_date=dto.last_closed_date,
            renewed_from_id=dto.renewed_from_id,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<CompensationModel {self.id}: {self.employee_id} "
            f"{self.daily_limit}/day ({self.status})>"
        )


# ---------------------------------------------------------------------------
# CompensationTransactionModel
# ---------------------------------------------------------------------------

class CompensationTransactionModel(TrackedBase):
    """ORM model for ``CompensationTransaction``."""

    __tablename__ = "compensation_transactions"

    compensation_id: Mapped[UUID] = mapped_column(ForeignKey("compensations.id"), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    company_pays: Mapped[Decimal] = mapped_column(nullable=False)
    employee_pays: Mapped[Decimal] = mapped_column(nullable=False)
    drawn_from_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_compensation_txn_day", "compensation_id", "transaction_date"),
    )

    def to_dto(self):
        from meal_modules.compensation.models import CompensationTransaction
        return CompensationTransaction(
            id=self.id,
            compensation_id=self.compensation_id,
            transaction_date=self.transaction_date,
            amount=self.amount,
            company_pays=self.company_pays,
            employee_pays=self.employee_pays,
            drawn_from_balance=self.drawn_from_balance,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "CompensationTransactionModel":
        return cls(
            id=dto.id,
            compensation_id=dto.compensation_id,
            transaction_date=dto.transaction_date,
            amount=dto.amount,
            company_pays=dto.company_pays,
            employee_pays=dto.employee_pays,
            drawn_from_balance=dto.drawn_from_balance,
            description=dto.description,
            created_by_id=created_by_id,
        )
