"""
Compensation Module (``meal_modules.compensation``).

Responsibility
--------------
Cash-like daily allowances: bulk creation with per-employee budgets,
edits that never cut the budget below what is spent, cancellation with
refund of the unspent budget, purchase transactions split between
company and employee, and day closing with carry-over.

``meal_modules.compensation.service`` holds ``CompensationService``.
"""

from meal_modules.compensation.models import (
    BulkCompensationResult,
    Compensation,
    CompensationCancelResult,
    CompensationPatch,
    CompensationRequest,
    CompensationTransaction,
    TransactionResult,
)

__all__ = [
    "BulkCompensationResult",
    "Compensation",
    "CompensationCancelResult",
    "CompensationPatch",
    "CompensationRequest",
    "CompensationTransaction",
    "TransactionResult",
]
