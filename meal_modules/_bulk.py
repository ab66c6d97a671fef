"""
Per-item isolation for bulk module operations.

Used by the lunch and compensation services wherever one request touches
many employees or subscriptions.  Each item runs in its own SAVEPOINT: a
rejection or a fatal error rolls back that item only and is reported in
the error list, never aggregated into a single pass/fail.

Architecture: Modules layer. Imports only from meal_kernel and SQLAlchemy.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from meal_kernel.exceptions import MealKernelError
from meal_kernel.logging_config import LogContext, get_logger

logger = get_logger("modules.bulk")

T = TypeVar("T")


@dataclass(frozen=True)
class BulkItemError:
    """Why one item of a bulk request was not applied."""

    item_id: UUID
    reason_code: str
    message: str = ""


@dataclass(frozen=True)
class BulkOutcome(Generic[T]):
    """Applied items and per-item errors of a bulk operation."""

    succeeded: tuple[T, ...]
    errors: tuple[BulkItemError, ...]
    requested: int

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def summary(self) -> str:
        """Human-readable "created N of M; errors: ..." line."""
        text = f"created {self.succeeded_count} of {self.requested}"
        if self.errors:
            details = ", ".join(f"{e.item_id}: {e.reason_code}" for e in self.errors)
            text = f"{text}; errors: {details}"
        return text


def isolate_each(
    session: Session,
    item_ids: Sequence[UUID],
    action: Callable[[UUID], T | BulkItemError],
    operation: str,
    context_field: str = "employee_id",
) -> BulkOutcome[T]:
    """
    Apply ``action`` to every id, each inside its own SAVEPOINT.

    ``action`` returns its result, or a ``BulkItemError`` for a business
    rejection.  ``MealKernelError`` and unexpected exceptions are caught per
    item, the SAVEPOINT is rolled back and the error is recorded.  The
    caller commits the enclosing transaction.
    """
    succeeded: list[T] = []
    errors: list[BulkItemError] = []

    for item_id in item_ids:
        with LogContext.bind(**{context_field: str(item_id)}):
            savepoint = session.begin_nested()
            try:
                outcome = action(item_id)
            except MealKernelError as exc:
                savepoint.rollback()
                errors.append(BulkItemError(item_id, exc.code, str(exc)))
                logger.info(
                    "bulk_item_rejected",
                    extra={"operation": operation, "reason_code": exc.code},
                )
                continue
            except Exception as exc:
                savepoint.rollback()
                errors.append(BulkItemError(item_id, "UNHANDLED_EXCEPTION", str(exc)))
                logger.exception(
                    "bulk_item_failed",
                    extra={"operation": operation},
                )
                continue

            if isinstance(outcome, BulkItemError):
                savepoint.rollback()
                errors.append(outcome)
                logger.info(
                    "bulk_item_rejected",
                    extra={"operation": operation, "reason_code": outcome.reason_code},
                )
                continue

            savepoint.commit()
            succeeded.append(outcome)

    result = BulkOutcome(
        succeeded=tuple(succeeded),
        errors=tuple(errors),
        requested=len(item_ids),
    )
    logger.info(
        "bulk_operation_completed",
        extra={
            "operation": operation,
            "requested": result.requested,
            "succeeded": result.succeeded_count,
            "failed": result.error_count,
        },
    )
    return result


def unique_ids(ids: Iterable[UUID]) -> tuple[UUID, ...]:
    """Drop repeated ids, keeping the first occurrence order."""
    return tuple(dict.fromkeys(ids))
