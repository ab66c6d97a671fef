"""
Bulk Targeting Pipeline Engine.

Pure functions with deterministic behavior. No I/O.

Narrows a company's employee set to the candidates for a bulk benefit
request.  Stages run in a fixed order and each records how many employees
passed it, so an empty candidate list can be explained stage by stage:

    active -> invite_accepted -> service_type -> no_existing_benefit
           -> working_days -> recurrence -> shift

The stage predicates are the ones the eligibility validator uses.  An
employee listed as a candidate therefore never fails eligibility on
creation (only a concurrent writer can change that).

Selections are plain immutable id sets.  A filter change never edits a
selection; instead ``Selection.view`` partitions it against the current
candidates into ``visible`` (submitted) and ``invisible`` (kept, shown to
the administrator for confirmation, never submitted).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from meal_config.schema import BusinessConfig
from meal_engines.eligibility import (
    BenefitKind,
    EmployeeSnapshot,
    InviteStatus,
    ShiftType,
    existing_benefit_reason,
    has_business_days,
    recurrence_reason,
)
from meal_engines.schedule_types import Recurrence
from meal_engines.tracer import traced_engine
from meal_kernel.logging_config import get_logger

logger = get_logger("engines.bulk_targeting")


# ============================================================================
# Stages
# ============================================================================


class FilterStage(str, Enum):
    """Pipeline stages, in evaluation order."""

    ACTIVE = "active"
    INVITE_ACCEPTED = "invite_accepted"
    SERVICE_TYPE = "service_type"
    NO_EXISTING_BENEFIT = "no_existing_benefit"
    WORKING_DAYS = "working_days"
    RECURRENCE = "recurrence"
    SHIFT = "shift"


STAGE_ORDER: tuple[FilterStage, ...] = tuple(FilterStage)


@dataclass(frozen=True)
class TargetingCriteria:
    """
    Current filter state of a bulk request.

    ``recurrence`` only applies to LUNCH; ``shift`` of None means any shift.
    """

    kind: BenefitKind
    recurrence: Recurrence | None = None
    shift: ShiftType | None = None


@dataclass(frozen=True)
class StageCount:
    """How many employees entered and passed a stage."""

    stage: FilterStage
    entered: int
    passed: int

    @property
    def dropped(self) -> int:
        return self.entered - self.passed


@dataclass(frozen=True)
class PipelineResult:
    """Candidates plus per-stage diagnostics."""

    candidates: tuple[EmployeeSnapshot, ...]
    stage_counts: tuple[StageCount, ...]
    total: int

    @property
    def candidate_ids(self) -> frozenset[UUID]:
        return frozenset(e.id for e in self.candidates)

    def count_after(self, stage: FilterStage) -> int:
        for count in self.stage_counts:
            if count.stage is stage:
                return count.passed
        raise KeyError(stage)

    @property
    def empty_at(self) -> FilterStage | None:
        """First stage that left no candidates, if any."""
        for count in self.stage_counts:
            if count.passed == 0:
                return count.stage
        return None


def _passes(
    stage: FilterStage,
    employee: EmployeeSnapshot,
    criteria: TargetingCriteria,
    config: BusinessConfig,
) -> bool:
    if stage is FilterStage.ACTIVE:
        return employee.is_active
    if stage is FilterStage.INVITE_ACCEPTED:
        return employee.invite_status is InviteStatus.ACCEPTED
    if stage is FilterStage.SERVICE_TYPE:
        return employee.service_type is criteria.kind
    if stage is FilterStage.NO_EXISTING_BENEFIT:
        return existing_benefit_reason(employee, criteria.kind) is None
    if stage is FilterStage.WORKING_DAYS:
        if criteria.kind is not BenefitKind.LUNCH:
            return True
        return has_business_days(employee.calendar(config))
    if stage is FilterStage.RECURRENCE:
        if criteria.kind is not BenefitKind.LUNCH or criteria.recurrence is None:
            return True
        return recurrence_reason(employee.calendar(config), criteria.recurrence) is None
    # FilterStage.SHIFT
    return criteria.shift is None or employee.shift_type is criteria.shift


@traced_engine("bulk_targeting", "1.0", fingerprint_fields=("criteria",))
def run_pipeline(
    employees: Iterable[EmployeeSnapshot],
    criteria: TargetingCriteria,
    config: BusinessConfig | None = None,
) -> PipelineResult:
    """Apply every stage in order and record the pass count of each."""
    cfg = config or BusinessConfig()
    remaining: Sequence[EmployeeSnapshot] = tuple(employees)
    total = len(remaining)
    counts: list[StageCount] = []

    for stage in STAGE_ORDER:
        entered = len(remaining)
        remaining = tuple(e for e in remaining if _passes(stage, e, criteria, cfg))
        counts.append(StageCount(stage=stage, entered=entered, passed=len(remaining)))

    result = PipelineResult(candidates=tuple(remaining), stage_counts=tuple(counts), total=total)
    logger.info(
        "bulk_targeting_completed",
        extra={
            "kind": criteria.kind.value,
            "total": total,
            "candidates": len(result.candidates),
            "stage_counts": {c.stage.value: c.passed for c in counts},
        },
    )
    return result


# ============================================================================
# Selection
# ============================================================================


@dataclass(frozen=True)
class SelectionView:
    """A selection partitioned against the current candidate list."""

    visible: frozenset[UUID]
    invisible: frozenset[UUID]

    @property
    def visible_selection_count(self) -> int:
        return len(self.visible)

    @property
    def invisible_selection_count(self) -> int:
        return len(self.invisible)

    @property
    def submittable_ids(self) -> tuple[UUID, ...]:
        """Ids sent to bulk creation, in a stable order."""
        return tuple(sorted(self.visible, key=str))


@dataclass(frozen=True)
class Selection:
    """The administrator's checked employees. Every change returns a new Selection."""

    ids: frozenset[UUID] = field(default_factory=frozenset)

    def add(self, *employee_ids: UUID) -> Selection:
        return Selection(self.ids | frozenset(employee_ids))

    def remove(self, *employee_ids: UUID) -> Selection:
        return Selection(self.ids - frozenset(employee_ids))

    def toggle(self, employee_id: UUID) -> Selection:
        if employee_id in self.ids:
            return self.remove(employee_id)
        return self.add(employee_id)

    def select_all(self, candidate_ids: Iterable[UUID]) -> Selection:
        return self.add(*candidate_ids)

    def clear(self) -> Selection:
        return Selection()

    def clear_invisible(self, candidate_ids: Iterable[UUID]) -> Selection:
        """Explicitly drop the selected employees the filters now hide."""
        return Selection(self.view(candidate_ids).visible)

    def view(self, candidate_ids: Iterable[UUID]) -> SelectionView:
        candidates = frozenset(candidate_ids)
        return SelectionView(
            visible=self.ids & candidates,
            invisible=self.ids - candidates,
        )

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, employee_id: object) -> bool:
        return employee_id in self.ids
