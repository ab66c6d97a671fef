"""
meal_batch.domain.types -- Pure frozen dataclasses for batch runs.

ZERO I/O.  Status enums plus the per-item and per-run result snapshots
returned by ``BatchExecutor.run``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchJobStatus(str, Enum):
    """Run-level outcome."""

    COMPLETED = "completed"  # Every item succeeded (or there were none)
    FAILED = "failed"  # No item succeeded
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed or were skipped


class BatchItemStatus(str, Enum):
    """Per-item outcome within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Nothing to do, e.g. already settled


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchItemResult:
    """Result of processing one item in its own SAVEPOINT."""

    item_index: int
    item_key: str  # Business identifier (employee_id, subscription_id, ...)
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class BatchRunResult:
    """Result of one complete run of a task."""

    run_id: UUID
    task_type: str
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    def results_with(self, status: BatchItemStatus) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status == status)
