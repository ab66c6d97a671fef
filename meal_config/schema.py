"""
Business Configuration Schema (``meal_config.schema``).

Defines the thresholds and price lists the scheduling engine reads:
minimum subscription length, weekly freeze quota, cutoff offset and
combo prices.  Values are injected into every engine entry point; no
engine reads a hardcoded threshold.

Sources, in order of precedence:
    1. ``BusinessConfig(...)`` built by the caller (tests, services).
    2. ``meal_config.loader.load_business_config(path)`` from YAML.
    3. ``BusinessConfig.with_defaults()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import time
from decimal import Decimal
from typing import Any, Self

from meal_kernel.exceptions import (
    InvalidCutoffTimeError,
    InvalidWorkingDaysError,
    NonPositiveRateError,
    UnknownComboTypeError,
)
from meal_kernel.logging_config import get_logger

logger = get_logger("config.schema")

DEFAULT_COMBO_PRICES: dict[str, Decimal] = {
    "Комбо 25": Decimal("25.00"),
    "Комбо 35": Decimal("35.00"),
}

# Flat keys used by the portal's key/value settings table
_FLAT_KEYS = {
    "subscription.min_days": "min_subscription_days",
    "subscription.max_freezes_per_week": "max_freezes_per_week",
    "subscription.default_months": "default_subscription_months",
    "order.cutoff_offset_hours": "cutoff_offset_hours",
    "order.default_cutoff_time": "default_cutoff_time",
    "budget.allow_overdraft": "allow_budget_overdraft",
    "persistence.retries": "persistence_retries",
}


def parse_cutoff_time(value: str | time) -> time:
    """
    Parse an ``HH:mm`` cutoff time.

    Raises:
        InvalidCutoffTimeError: if the string is not a valid 24h time.
    """
    if isinstance(value, time):
        return value
    parts = str(value).strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise InvalidCutoffTimeError(str(value))
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise InvalidCutoffTimeError(str(value))
    return time(hours, minutes)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class BusinessConfig:
    """
    Read-only business thresholds for the scheduling engine.

    Field defaults match the portal's shipped configuration.
    """

    min_subscription_days: int = 5
    max_freezes_per_week: int = 2
    cutoff_offset_hours: int = 0
    default_cutoff_time: time = time(10, 0)
    combo_prices: dict[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_COMBO_PRICES)
    )
    default_working_days: tuple[int, ...] = (1, 2, 3, 4, 5)
    every_other_day_weekdays: tuple[int, ...] = (1, 3, 5)
    allow_budget_overdraft: bool = True
    default_subscription_months: int = 1
    persistence_retries: int = 1

    def __post_init__(self):
        if self.min_subscription_days < 1:
            raise ValueError("min_subscription_days must be at least 1")
        if self.max_freezes_per_week < 0:
            raise ValueError("max_freezes_per_week cannot be negative")
        if not -23 <= self.cutoff_offset_hours <= 23:
            raise ValueError("cutoff_offset_hours must be within -23..23")
        if self.default_subscription_months < 1:
            raise ValueError("default_subscription_months must be at least 1")
        if self.persistence_retries < 0:
            raise ValueError("persistence_retries cannot be negative")

        for days in (self.default_working_days, self.every_other_day_weekdays):
            if not days or any(d not in range(7) for d in days):
                raise InvalidWorkingDaysError(tuple(days))

        if not self.combo_prices:
            raise ValueError("combo_prices must define at least one combo")
        for combo, price in self.combo_prices.items():
            if Decimal(price) <= 0:
                raise NonPositiveRateError(f"combo_prices[{combo}]", Decimal(price))

        logger.debug(
            "business_config_initialized",
            extra={
                "min_subscription_days": self.min_subscription_days,
                "max_freezes_per_week": self.max_freezes_per_week,
                "cutoff_offset_hours": self.cutoff_offset_hours,
                "combo_types": sorted(self.combo_prices),
            },
        )

    def combo_price(self, combo_type: str) -> Decimal:
        """
        Daily price of ``combo_type``.

        Raises:
            UnknownComboTypeError: if the combo is not configured.
        """
        try:
            return Decimal(self.combo_prices[combo_type])
        except KeyError:
            raise UnknownComboTypeError(
                combo_type, tuple(sorted(self.combo_prices))
            ) from None

    def evolve(self, **changes: Any) -> Self:
        """Copy with selected fields replaced."""
        return replace(self, **changes)

    @classmethod
    def with_defaults(cls) -> Self:
        """Return configuration with the shipped defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create configuration from a dictionary.

        Accepts the nested shape served by the portal's config API::

            {"subscription": {"minDays": 5, "maxFreezesPerWeek": 2},
             "order": {"cutoffOffsetHours": 0, "defaultCutoffTime": "10:00"},
             "budget": {"allowOverdraft": true},
             "combo": {"prices": {"Комбо 25": 25}}}

        as well as flat ``snake_case`` field names and dotted settings keys
        (``subscription.min_days``).  Unknown keys are ignored.
        """
        values: dict[str, Any] = {}

        subscription = data.get("subscription") or {}
        order = data.get("order") or {}
        budget = data.get("budget") or {}
        combo = data.get("combo") or {}
        calendar = data.get("calendar") or {}

        nested = {
            "min_subscription_days": subscription.get("minDays"),
            "max_freezes_per_week": subscription.get("maxFreezesPerWeek"),
            "default_subscription_months": subscription.get("defaultMonths"),
            "cutoff_offset_hours": order.get("cutoffOffsetHours"),
            "default_cutoff_time": order.get("defaultCutoffTime"),
            "allow_budget_overdraft": budget.get("allowOverdraft"),
            "combo_prices": combo.get("prices"),
            "default_working_days": calendar.get("defaultWorkingDays"),
            "every_other_day_weekdays": calendar.get("everyOtherDayWeekdays"),
        }
        values.update({k: v for k, v in nested.items() if v is not None})

        for key, name in _FLAT_KEYS.items():
            if key in data:
                values[name] = data[key]
        for name in cls.__dataclass_fields__:
            if name in data:
                values[name] = data[name]

        return cls(**_coerce(values))


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    """Coerce raw YAML / settings-table values into field types."""
    out = dict(values)
    for name in (
        "min_subscription_days",
        "max_freezes_per_week",
        "cutoff_offset_hours",
        "default_subscription_months",
        "persistence_retries",
    ):
        if name in out:
            out[name] = int(out[name])
    if "default_cutoff_time" in out:
        out["default_cutoff_time"] = parse_cutoff_time(out["default_cutoff_time"])
    if "allow_budget_overdraft" in out:
        out["allow_budget_overdraft"] = _to_bool(out["allow_budget_overdraft"])
    if "combo_prices" in out:
        out["combo_prices"] = {
            str(k): Decimal(str(v)) for k, v in out["combo_prices"].items()
        }
    for name in ("default_working_days", "every_other_day_weekdays"):
        if name in out:
            out[name] = tuple(int(d) for d in out[name])
    return out
