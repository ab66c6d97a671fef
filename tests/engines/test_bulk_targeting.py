"""
Tests for the bulk targeting pipeline and selection reconciliation.
"""

from datetime import date
from uuid import uuid4

from meal_engines.bulk_targeting import (
    STAGE_ORDER,
    FilterStage,
    Selection,
    TargetingCriteria,
    run_pipeline,
)
from meal_engines.eligibility import BenefitKind, InviteStatus, ShiftType
from meal_engines.schedule_types import Recurrence

SAT = date(2024, 1, 6)


class TestPipeline:

    def test_stage_order_is_fixed(self):
        assert STAGE_ORDER == (
            FilterStage.ACTIVE,
            FilterStage.INVITE_ACCEPTED,
            FilterStage.SERVICE_TYPE,
            FilterStage.NO_EXISTING_BENEFIT,
            FilterStage.WORKING_DAYS,
            FilterStage.RECURRENCE,
            FilterStage.SHIFT,
        )

    def test_each_stage_count_is_observable(self, make_snapshot):
        employees = [
            make_snapshot(is_active=False),
            make_snapshot(invite_status=InviteStatus.PENDING),
            make_snapshot(service_type=BenefitKind.COMPENSATION),
            make_snapshot(active_lunch_subscription_id=uuid4()),
            make_snapshot(working_days=frozenset({0, 6})),
            make_snapshot(working_days=frozenset({1, 2})),
            make_snapshot(shift_type=ShiftType.NIGHT),
            make_snapshot(),
        ]
        result = run_pipeline(
            employees,
            TargetingCriteria(BenefitKind.LUNCH, Recurrence.every_day(), ShiftType.DAY),
        )
        assert result.total == 8
        assert [c.passed for c in result.stage_counts] == [7, 6, 5, 4, 3, 2, 1]
        assert all(c.dropped == 1 for c in result.stage_counts)
        assert result.candidate_ids == {employees[-1].id}

    def test_saturday_only_custom_drops_at_recurrence_stage(self, make_snapshot):
        """Ten otherwise eligible employees; a Saturday-only CUSTOM empties the list."""
        employees = [make_snapshot() for _ in range(10)]
        result = run_pipeline(
            employees,
            TargetingCriteria(BenefitKind.LUNCH, Recurrence.custom([SAT]), ShiftType.DAY),
        )
        assert result.candidates == ()
        assert result.count_after(FilterStage.WORKING_DAYS) == 10
        assert result.count_after(FilterStage.RECURRENCE) == 0
        assert result.empty_at is FilterStage.RECURRENCE

    def test_calendar_stages_skip_compensation(self, make_snapshot):
        employee = make_snapshot(service_type=BenefitKind.COMPENSATION, working_days=frozenset({0, 6}))
        result = run_pipeline([employee], TargetingCriteria(BenefitKind.COMPENSATION))
        assert result.candidate_ids == {employee.id}

    def test_any_shift(self, make_snapshot):
        employees = [make_snapshot(shift_type=ShiftType.NIGHT), make_snapshot()]
        result = run_pipeline(employees, TargetingCriteria(BenefitKind.LUNCH))
        assert len(result.candidates) == 2

    def test_logs_stage_counts(self, make_snapshot, captured_logs):
        run_pipeline([make_snapshot()], TargetingCriteria(BenefitKind.LUNCH))
        record = next(r for r in captured_logs() if r["message"] == "bulk_targeting_completed")
        assert record["candidates"] == 1


class TestSelectionReconciliation:

    def test_shift_switch_moves_selection_between_partitions(self, make_snapshot):
        day = make_snapshot(shift_type=ShiftType.DAY)
        night = make_snapshot(shift_type=ShiftType.NIGHT)
        employees = [day, night]

        day_candidates = run_pipeline(
            employees, TargetingCriteria(BenefitKind.LUNCH, shift=ShiftType.DAY),
        ).candidate_ids
        selection = Selection().add(day.id, night.id)
        assert selection.view(day_candidates).visible == {day.id}

        night_candidates = run_pipeline(
            employees, TargetingCriteria(BenefitKind.LUNCH, shift=ShiftType.NIGHT),
        ).candidate_ids
        view = selection.view(night_candidates)
        assert view.visible == {night.id}
        assert view.invisible == {day.id}
        assert view.visible_selection_count == 1
        assert view.submittable_ids == (night.id,)
        # The filter change did not drop anyone
        assert len(selection) == 2

    def test_clear_invisible_is_explicit(self):
        a, b = uuid4(), uuid4()
        selection = Selection().add(a, b)
        assert selection.clear_invisible({a}).ids == {a}
        assert selection.ids == {a, b}

    def test_toggle_and_select_all(self):
        a, b = uuid4(), uuid4()
        selection = Selection().select_all([a, b]).toggle(a)
        assert a not in selection
        assert b in selection
        assert len(selection.clear()) == 0
