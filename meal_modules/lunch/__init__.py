"""
Lunch Module (``meal_modules.lunch``).

Responsibility
--------------
Lunch-combo subscriptions and their daily orders: bulk creation,
editing, cancellation with refund, single-day freeze and unfreeze,
pause and resume.

Architecture position
---------------------
**Modules layer** -- DTOs and ORM models here; ``meal_modules.lunch.service``
holds ``LunchSubscriptionService``, which delegates every scheduling
rule to ``meal_engines``.
"""

from meal_modules.lunch.models import (
    BulkCreateResult,
    CancelResult,
    FreezePeriodResult,
    FreezeResult,
    LunchSubscription,
    LunchSubscriptionRequest,
    Order,
    SettlementCharge,
    SubscriptionPatch,
    UnfreezeResult,
    UpdateResult,
)

__all__ = [
    "BulkCreateResult",
    "CancelResult",
    "FreezePeriodResult",
    "FreezeResult",
    "LunchSubscription",
    "LunchSubscriptionRequest",
    "Order",
    "SettlementCharge",
    "SubscriptionPatch",
    "UnfreezeResult",
    "UpdateResult",
]
