"""
Module: meal_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    scheduling engines.  This is the import surface for meal_modules and
    meal_batch.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import meal_kernel (exceptions, dates, logging), meal_config
    and sibling engine modules.  MUST NOT import meal_modules or meal_batch.

Invariants enforced:
    - Purity: engines never read the clock.  ``today`` and ``now`` are
      passed in by the calling service, once per operation.
    - Decimal-only arithmetic for prices, budgets and refunds.
    - One rule set: day counts, eligibility and pricing are computed here
      and nowhere else, so every entry point (individual, bulk, edit,
      renewal) agrees.

Usage:
    from meal_engines import Recurrence, WorkingDayCalendar, expand
    from meal_engines import check_eligibility, run_pipeline
"""

from meal_kernel.logging_config import get_logger

logger = get_logger("engines")

from meal_engines.bulk_targeting import (
    FilterStage,
    PipelineResult,
    Selection,
    SelectionView,
    StageCount,
    TargetingCriteria,
    run_pipeline,
)
from meal_engines.calendar import (
    WorkingDayCalendar,
    count_qualifying_days,
    effective_working_days,
)
from meal_engines.compensation import (
    TransactionSplit,
    compensation_days,
    effective_daily_limit,
    split_transaction,
    unspent_budget,
)
from meal_engines.cutoff import cutoff_instant, ensure_before_cutoff, is_past_cutoff
from meal_engines.eligibility import (
    BenefitKind,
    EligibilityReason,
    EligibilityResult,
    EmployeeSnapshot,
    InviteStatus,
    ShiftType,
    check_eligibility,
)
from meal_engines.lifecycle import (
    ORDER_MACHINE,
    SUBSCRIPTION_MACHINE,
    FreezeQuota,
    OrderStatus,
    SubscriptionStatus,
    freeze_quota,
)
from meal_engines.pricing import (
    PricePreview,
    auto_total_budget,
    bulk_compensation_total,
    daily_rate,
    preview_price_change,
    price_for_remaining,
    refund_amount,
    total_cost,
)
from meal_engines.recurrence import Expansion, expand, explain_expansion, extend_to_day_count
from meal_engines.schedule_types import Recurrence, RecurrenceKind

__all__ = [
    # Schedule
    "Recurrence",
    "RecurrenceKind",
    "WorkingDayCalendar",
    "count_qualifying_days",
    "effective_working_days",
    "Expansion",
    "expand",
    "explain_expansion",
    "extend_to_day_count",
    # Eligibility
    "BenefitKind",
    "EligibilityReason",
    "EligibilityResult",
    "EmployeeSnapshot",
    "InviteStatus",
    "ShiftType",
    "check_eligibility",
    # Bulk targeting
    "FilterStage",
    "PipelineResult",
    "Selection",
    "SelectionView",
    "StageCount",
    "TargetingCriteria",
    "run_pipeline",
    # Pricing
    "PricePreview",
    "auto_total_budget",
    "bulk_compensation_total",
    "daily_rate",
    "preview_price_change",
    "price_for_remaining",
    "refund_amount",
    "total_cost",
    # Lifecycle
    "ORDER_MACHINE",
    "SUBSCRIPTION_MACHINE",
    "FreezeQuota",
    "OrderStatus",
    "SubscriptionStatus",
    "freeze_quota",
    "cutoff_instant",
    "ensure_before_cutoff",
    "is_past_cutoff",
    # Compensation
    "TransactionSplit",
    "compensation_days",
    "effective_daily_limit",
    "split_transaction",
    "unspent_budget",
]
