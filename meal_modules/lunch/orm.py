"""
Lunch ORM Persistence Models (``meal_modules.lunch.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the frozen DTOs defined in
    ``meal_modules.lunch.models``.  Each ORM class mirrors a DTO and
    provides ``to_dto()`` / ``from_dto()`` round-trip conversion.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(18,2)) -- NEVER float.
    - Enum fields stored as String containing the enum .value string.
    - At most one open (Active or Paused) subscription per employee:
      partial unique index ``uq_lunch_subscription_open_employee``.
    - At most one order per (subscription, date): ``uq_lunch_order_day``.
      Guest orders (NULL subscription) are not constrained.
    - ``custom_days`` stores CUSTOM dates as comma-separated ``YYYY-MM-DD``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from meal_engines.lifecycle import OrderStatus, SubscriptionStatus
from meal_engines.schedule_types import Recurrence, RecurrenceKind
from meal_kernel.db.base import TrackedBase
from meal_kernel.domain.dates import format_wire_date, parse_wire_date

_OPEN_STATUSES = "status IN ('Active', 'Paused')"


def encode_custom_days(recurrence: Recurrence) -> str | None:
    if not recurrence.kind.is_custom:
        return None
    return ",".join(format_wire_date(d) for d in recurrence.custom_dates)


def decode_recurrence(schedule_type: str | None, custom_days: str | None) -> Recurrence:
    kind = RecurrenceKind.normalize(schedule_type)
    if kind.is_custom:
        return Recurrence.custom(parse_wire_date(d) for d in (custom_days or "").split(",") if d)
    return Recurrence(kind)


# ---------------------------------------------------------------------------
# LunchSubscriptionModel
# ---------------------------------------------------------------------------

class LunchSubscriptionModel(TrackedBase):
    """
    ORM model for ``LunchSubscription``.

    Contract:
        ``total_days`` and ``total_price`` always equal the count and the
        price sum of the subscription's billable and consumed orders; the
        service recomputes them from the order rows after every change.

    Guarantees:
        - ``schedule_type`` and ``status`` store enum .value strings.
        - ``original_end_date`` is set on the first freeze and never moves.
    """

    __tablename__ = "lunch_subscriptions"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    combo_type: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    schedule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    custom_days: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    original_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    frozen_days_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    renewed_from_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index(
            "uq_lunch_subscription_open_employee",
            "employee_id",
            unique=True,
            sqlite_where=text(_OPEN_STATUSES),
            postgresql_where=text(_OPEN_STATUSES),
        ),
        Index("idx_lunch_subscription_status_end", "status", "end_date"),
        Index("idx_lunch_subscription_company", "company_id"),
    )

    @property
    def recurrence(self) -> Recurrence:
        return decode_recurrence(self.schedule_type, self.custom_days)

    @recurrence.setter
    def recurrence(self, value: Recurrence) -> None:
        self.schedule_type = value.kind.value
        self.custom_days = encode_custom_days(value)

    @property
    def status_enum(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.status)

    def to_dto(self):
        from meal_modules.lunch.models import LunchSubscription
        return LunchSubscription(
            id=self.id,
            employee_id=self.employee_id,
            company_id=self.company_id,
            combo_type=self.combo_type,
            price=self.price,
            recurrence=self.recurrence,
            start_date=self.start_date,
            end_date=self.end_date,
            status=SubscriptionStatus(self.status),
            total_days=self.total_days,
            total_price=self.total_price,
            original_end_date=self.original_end_date,
            frozen_days_count=self.frozen_days_count,
            auto_renew=self.auto_renew,
            renewed_from_id=self.renewed_from_id,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "LunchSubscriptionModel":
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            company_id=dto.company_id,
            combo_type=dto.combo_type,
            price=dto.price,
            schedule_type=dto.recurrence.kind.value,
            custom_days=encode_custom_days(dto.recurrence),
            start_date=dto.start_date,
            end_date=dto.end_date,
            original_end_date=dto.original_end_date,
            status=dto.status.value,
            total_days=dto.total_days,
            total_price=dto.total_price,
            frozen_days_count=dto.frozen_days_count,
            auto_renew=dto.auto_renew,
            renewed_from_id=dto.renewed_from_id,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<LunchSubscriptionModel {self.id}: {self.employee_id} "
            f"{self.start_date}..{self.end_date} ({self.status})>"
        )


# ---------------------------------------------------------------------------
# OrderModel
# ---------------------------------------------------------------------------

class OrderModel(TrackedBase):
    """
    ORM model for ``Order`` -- one delivery day.

    Guarantees:
        - ``status`` stores an ``OrderStatus`` .value string.
        - ``frozen_on`` is the local date the freeze happened; the weekly
          freeze quota counts it.  Cleared on unfreeze.
        - ``replacement_order_id`` points at the order appended to the end
          of the subscription when this order was frozen.
    """

    __tablename__ = "lunch_orders"

    subscription_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("lunch_subscriptions.id"), nullable=True,
    )
    employee_id: Mapped[UUID | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    combo_type: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    frozen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    frozen_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    freeze_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    replacement_order_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("subscription_id", "order_date", name="uq_lunch_order_day"),
        Index("idx_lunch_order_date_status", "order_date", "status"),
        Index("idx_lunch_order_employee_frozen", "employee_id", "frozen_on"),
    )

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    def to_dto(self):
        from meal_modules.lunch.models import Order
        return Order(
            id=self.id,
            subscription_id=self.subscription_id,
            employee_id=self.employee_id,
            company_id=self.company_id,
            order_date=self.order_date,
            combo_type=self.combo_type,
            price=self.price,
            status=OrderStatus(self.status),
            frozen_at=self.frozen_at,
            freeze_reason=self.freeze_reason,
            replacement_order_id=self.replacement_order_id,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "OrderModel":
        return cls(
            id=dto.id,
            subscription_id=dto.subscription_id,
            employee_id=dto.employee_id,
            company_id=dto.company_id,
            order_date=dto.order_date,
            combo_type=dto.combo_type,
            price=dto.price,
            status=dto.status.value,
            frozen_at=dto.frozen_at,
            frozen_on=dto.frozen_at.date() if dto.frozen_at else None,
            freeze_reason=dto.freeze_reason,
            replacement_order_id=dto.replacement_order_id,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<OrderModel {self.id}: {self.order_date} {self.combo_type} ({self.status})>"
