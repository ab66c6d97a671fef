"""
BatchExecutor -- SAVEPOINT-per-item execution of daily jobs.

Contract:
    ``run(task_type, actor_id)`` prepares the task's items and executes
    each one in its own SAVEPOINT, returning a ``BatchRunResult``.

Architecture: meal_batch/services.  Imports from meal_batch.domain,
    meal_batch.tasks and the kernel clock/logging.

Invariants enforced:
    - One SAVEPOINT per item: a failing item is rolled back alone and the
      run continues with the next one.
    - One clock reading per run: every item sees the same ``as_of``.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from meal_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
)
from meal_batch.tasks.base import TaskRegistry
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")


class BatchExecutor:
    """Batch execution engine with SAVEPOINT-per-item isolation.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT persist job history; the run result is returned.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()

    def run(
        self,
        task_type: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
    ) -> BatchRunResult:
        """Run one task over all of its eligible items.

        Raises:
            KeyError: If task_type is not registered.
        """
        task = self._task_registry.get(task_type)
        run_id = uuid4()
        start_time = time.monotonic()
        as_of = self._clock.now()
        params = dict(parameters or {})
        params["actor_id"] = str(actor_id)

        with LogContext.bind(batch_id=str(run_id)):
            items = task.prepare_items(parameters=params, session=self._session, as_of=as_of)
            logger.info(
                "batch_run_started",
                extra={"task_type": task_type, "as_of": as_of.isoformat(), "total_items": len(items)},
            )

            succeeded = 0
            failed = 0
            skipped = 0
            item_results: list[BatchItemResult] = []

            for batch_item in items:
                item_start = time.monotonic()
                savepoint = self._session.begin_nested()
                try:
                    result = task.execute_item(
                        item=batch_item,
                        parameters=params,
                        session=self._session,
                        as_of=as_of,
                    )
                    if result.status == BatchItemStatus.SUCCEEDED:
                        savepoint.commit()
                        succeeded += 1
                    elif result.status == BatchItemStatus.SKIPPED:
                        savepoint.rollback()
                        skipped += 1
                    else:
                        savepoint.rollback()
                        failed += 1
                        logger.warning(
                            "batch_item_failed",
                            extra={
                                "item_key": batch_item.item_key,
                                "error_code": result.error_code or "UNKNOWN",
                                "error_message": result.error_message or "",
                            },
                        )

                    item_result = BatchItemResult(
                        item_index=batch_item.item_index,
                        item_key=batch_item.item_key,
                        status=result.status,
                        error_code=result.error_code,
                        error_message=result.error_message,
                        result_data=result.result_data,
                        duration_ms=int((time.monotonic() - item_start) * 1000),
                    )

                except Exception as exc:
                    savepoint.rollback()
                    failed += 1
                    logger.exception(
                        "batch_item_unhandled_exception",
                        extra={"item_key": batch_item.item_key},
                    )
                    item_result = BatchItemResult(
                        item_index=batch_item.item_index,
                        item_key=batch_item.item_key,
                        status=BatchItemStatus.FAILED,
                        error_code="UNHANDLED_EXCEPTION",
                        error_message=str(exc),
                        duration_ms=int((time.monotonic() - item_start) * 1000),
                    )

                item_results.append(item_result)

            if failed == 0 and skipped == 0:
                status = BatchJobStatus.COMPLETED
            elif succeeded == 0 and skipped == 0:
                status = BatchJobStatus.FAILED
            else:
                status = BatchJobStatus.PARTIALLY_COMPLETED

            self._session.flush()
            total_duration = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "batch_run_completed",
                extra={
                    "status": status.value,
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": total_duration,
                },
            )

        return BatchRunResult(
            run_id=run_id,
            task_type=task_type,
            status=status,
            total_items=len(items),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=tuple(item_results),
            started_at=as_of,
            completed_at=self._clock.now(),
            duration_ms=total_duration,
        )
