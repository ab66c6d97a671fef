"""
Shared persistence helper for module services.

Used by meal_modules/*/service.py around every write that can hit a
storage-level guard: the partial unique index on open benefits per
employee, and the unique ``(subscription_id, order_date)`` on orders.

Architecture: Modules layer. Imports only from meal_kernel and SQLAlchemy.

Behavior:
    - The write runs inside its own SAVEPOINT and is flushed there, so a
      failure leaves the enclosing transaction usable.
    - ``OperationalError`` (lock timeout, serialization failure, "database
      is locked") is a transient conflict: the SAVEPOINT is rolled back and
      the write re-run, up to ``retries`` extra attempts.  After that it is
      raised as ``ConcurrentModificationError``.
    - ``IntegrityError`` is never retried.  With a ``benefit`` key it becomes
      ``DuplicateActiveBenefitError``; otherwise ``PersistenceError``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from meal_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateActiveBenefitError,
    PersistenceError,
)
from meal_kernel.logging_config import get_logger

logger = get_logger("modules.persistence")

T = TypeVar("T")


def with_persistence_retry(
    session: Session,
    operation: str,
    write: Callable[[], T],
    retries: int = 1,
    benefit: tuple[str, str] | None = None,
) -> T:
    """
    Run ``write`` in a SAVEPOINT, flush, and map storage errors.

    Args:
        session: Session with an open transaction.
        operation: Name used in logs and errors (e.g. "create_subscription").
        write: Adds/changes ORM objects; must be safe to run again.
        retries: Extra attempts on a transient conflict.
        benefit: ``(employee_id, kind)`` when the write creates an open
            benefit, so a uniqueness violation reads as a duplicate.

    Raises:
        DuplicateActiveBenefitError: benefit uniqueness guard fired.
        PersistenceError: any other constraint violation.
        ConcurrentModificationError: conflict outlived the retry budget.
    """
    attempt = 0
    while True:
        attempt += 1
        savepoint = session.begin_nested()
        try:
            result = write()
            session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            logger.warning(
                "persistence_constraint_violated",
                extra={"operation": operation, "error": str(exc.orig)},
            )
            if benefit is not None:
                raise DuplicateActiveBenefitError(*benefit) from exc
            raise PersistenceError(operation, str(exc.orig)) from exc
        except OperationalError as exc:
            savepoint.rollback()
            if attempt > retries:
                logger.error(
                    "persistence_retry_exhausted",
                    extra={"operation": operation, "attempts": attempt},
                )
                raise ConcurrentModificationError(operation, attempt) from exc
            logger.warning(
                "persistence_retry",
                extra={"operation": operation, "attempt": attempt, "error": str(exc.orig)},
            )
            continue
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()
        return result
