"""
Benefit Pricing Engine.

Pure functions with deterministic behavior. No I/O.

Prices lunch subscriptions and sizes compensation budgets:
- daily rate lookup (combo price or daily limit)
- auto-computed total budget (days x daily limit)
- bulk totals (LUNCH: days x rate x employees; COMPENSATION: per-employee days)
- proration for the remaining part of a subscription
- refunds, which are always the sum of persisted future order prices

Refunds are never recomputed as rate x days after creation: individual
order prices may have been adjusted since, so only the stored prices are
authoritative.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from meal_config.schema import BusinessConfig
from meal_engines.eligibility import BenefitKind
from meal_kernel.exceptions import NonPositiveRateError
from meal_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")


# ============================================================================
# Constants
# ============================================================================

_TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0")


def _money(amount: Decimal | int | str) -> Decimal:
    return Decimal(str(amount)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def _require_positive(field_name: str, value: Decimal) -> Decimal:
    if value <= 0:
        raise NonPositiveRateError(field_name, value)
    return value


# ============================================================================
# Value Objects
# ============================================================================


@dataclass(frozen=True)
class PricePreview:
    """Effect of switching future orders of a subscription to a new price."""

    current_price: Decimal
    new_price: Decimal
    affected_order_count: int

    def __post_init__(self) -> None:
        if self.affected_order_count < 0:
            raise ValueError("affected_order_count cannot be negative")

    @property
    def price_difference(self) -> Decimal:
        return _money(self.new_price - self.current_price)

    @property
    def total_impact(self) -> Decimal:
        return _money(self.price_difference * self.affected_order_count)


# ============================================================================
# Rates and totals
# ============================================================================


def daily_rate(
    kind: BenefitKind,
    combo_or_limit: str | Decimal | int,
    config: BusinessConfig | None = None,
) -> Decimal:
    """
    Daily price of a benefit.

    LUNCH takes a combo type and looks it up in ``config.combo_prices``;
    COMPENSATION takes the daily limit itself.

    Raises:
        UnknownComboTypeError: combo type not configured.
        NonPositiveRateError: daily limit <= 0.
    """
    if kind is BenefitKind.LUNCH:
        cfg = config or BusinessConfig()
        return _money(cfg.combo_price(str(combo_or_limit)))
    return _money(_require_positive("daily_limit", Decimal(str(combo_or_limit))))


def auto_total_budget(days: int, daily_limit: Decimal) -> Decimal:
    """Budget used when none is supplied: ``days * daily_limit``."""
    if days < 0:
        raise ValueError("days cannot be negative")
    return _money(Decimal(days) * _require_positive("daily_limit", Decimal(daily_limit)))


def total_cost(days: int, rate: Decimal, target_count: int = 1) -> Decimal:
    """Cost of a LUNCH request: ``days * rate * target_count``."""
    if days < 0 or target_count < 0:
        raise ValueError("days and target_count cannot be negative")
    return _money(Decimal(days) * _require_positive("rate", Decimal(rate)) * target_count)


def bulk_compensation_total(day_counts: Iterable[int], daily_limit: Decimal) -> Decimal:
    """Sum of each employee's own ``days * daily_limit``."""
    return _money(sum(
        (auto_total_budget(days, daily_limit) for days in day_counts), _ZERO,
    ))


# ============================================================================
# Proration and refunds
# ============================================================================


def price_for_remaining(remaining_order_count: int, rate: Decimal) -> Decimal:
    """Price of the not-yet-consumed part of a subscription."""
    if remaining_order_count < 0:
        raise ValueError("remaining_order_count cannot be negative")
    return _money(Decimal(remaining_order_count) * Decimal(rate))


def refund_amount(future_order_prices: Iterable[Decimal]) -> Decimal:
    """Refund on cancellation: the sum of persisted future order prices."""
    return _money(sum((Decimal(p) for p in future_order_prices), _ZERO))


def repricing_delta(
    old_prices: Iterable[Decimal],
    new_prices: Iterable[Decimal],
) -> Decimal:
    """Change in cost when future orders are regenerated or re-priced."""
    return _money(refund_amount(new_prices) - refund_amount(old_prices))


def preview_price_change(
    current_price: Decimal,
    new_price: Decimal,
    affected_order_count: int,
) -> PricePreview:
    preview = PricePreview(
        current_price=_money(current_price),
        new_price=_money(new_price),
        affected_order_count=affected_order_count,
    )
    logger.debug(
        "price_change_previewed",
        extra={
            "current_price": str(preview.current_price),
            "new_price": str(preview.new_price),
            "affected_order_count": affected_order_count,
            "total_impact": str(preview.total_impact),
        },
    )
    return preview
