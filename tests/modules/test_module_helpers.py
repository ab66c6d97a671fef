"""
Tests for the shared module helpers: per-item bulk isolation, the
persistence retry wrapper, domain events and the employee directory.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from meal_engines.eligibility import BenefitKind, EmployeeSnapshot
from meal_engines.lifecycle import OrderStatus
from meal_kernel.exceptions import (
    ConcurrentModificationError,
    EmployeeNotFoundError,
    PersistenceError,
    SubscriptionNotFoundError,
)
from meal_modules._bulk import BulkItemError, BulkOutcome, isolate_each, unique_ids
from meal_modules._persistence import with_persistence_retry
from meal_modules.employees.directory import EmployeeDirectory
from meal_modules.employees.orm import EmployeeModel
from meal_modules.events import BenefitEvent, EventSink, NullEventSink, RecordingEventSink
from meal_modules.lunch.orm import OrderModel


def _locked() -> OperationalError:
    return OperationalError("UPDATE lunch_orders", {}, Exception("database is locked"))


# =============================================================================
# Bulk isolation
# =============================================================================


class TestIsolateEach:

    def test_failed_item_rolled_back_alone(self, session, make_snapshot, test_actor_id):
        directory = EmployeeDirectory(session)
        ids = [uuid4(), uuid4(), uuid4()]

        def action(item_id):
            directory.register(make_snapshot(id=item_id), actor_id=test_actor_id)
            if item_id == ids[1]:
                raise SubscriptionNotFoundError("x")
            return item_id

        outcome = isolate_each(session, ids, action, "register")
        assert outcome.succeeded == (ids[0], ids[2])
        assert outcome.errors[0].reason_code == "SUBSCRIPTION_NOT_FOUND"
        assert session.get(EmployeeModel, ids[1]) is None
        assert session.get(EmployeeModel, ids[2]) is not None

    def test_returned_rejection(self, session):
        item = uuid4()
        outcome = isolate_each(session, [item], lambda i: BulkItemError(i, "NOPE"), "noop")
        assert outcome.succeeded == ()
        assert outcome.errors == (BulkItemError(item, "NOPE"),)

    def test_unexpected_exception_recorded(self, session, captured_logs):
        item = uuid4()

        def boom(_):
            raise RuntimeError("kaput")

        outcome = isolate_each(session, [item], boom, "boom")
        assert outcome.errors[0].reason_code == "UNHANDLED_EXCEPTION"
        record = next(r for r in captured_logs() if r["message"] == "bulk_item_failed")
        assert record["exc_type"] == "RuntimeError"
        assert record["employee_id"] == str(item)

    def test_summary(self):
        a, b = uuid4(), uuid4()
        outcome = BulkOutcome(succeeded=("x",), errors=(BulkItemError(b, "INVITE_NOT_ACCEPTED"),), requested=2)
        assert outcome.summary == f"created 1 of 2; errors: {b}: INVITE_NOT_ACCEPTED"
        assert BulkOutcome(("x",), (), 1).summary == "created 1 of 1"
        assert unique_ids([a, b, a]) == (a, b)


# =============================================================================
# Persistence retry
# =============================================================================


class TestWithPersistenceRetry:

    def test_transient_conflict_retried(self, session):
        calls = []

        def write():
            calls.append(1)
            if len(calls) == 1:
                raise _locked()
            return "ok"

        assert with_persistence_retry(session, "op", write, retries=1) == "ok"
        assert len(calls) == 2

    def test_retry_budget_exhausted(self, session):
        def write():
            raise _locked()

        with pytest.raises(ConcurrentModificationError) as exc_info:
            with_persistence_retry(session, "op", write, retries=1)
        assert exc_info.value.attempts == 2

    def test_constraint_violation_not_retried(
        self, session, lunch_service, make_employee, subscribe, test_actor_id,
    ):
        sub = subscribe(make_employee())
        day = sub.start_date
        calls = []

        def write():
            calls.append(1)
            session.add(OrderModel(
                id=uuid4(),
                subscription_id=sub.id,
                employee_id=sub.employee_id,
                order_date=day,
                combo_type=sub.combo_type,
                price=Decimal("25.00"),
                status=OrderStatus.ACTIVE.value,
                created_by_id=test_actor_id,
            ))

        with pytest.raises(PersistenceError):
            with_persistence_retry(session, "duplicate_order", write, retries=3)
        assert len(calls) == 1
        assert len(lunch_service.list_orders(sub.id)) == 10


# =============================================================================
# Events
# =============================================================================


class TestEvents:

    def test_recording_sink(self):
        sink = RecordingEventSink()
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        sink.publish(BenefitEvent("order.frozen", now, {"order_id": "o"}))
        sink.publish(BenefitEvent("order.unfrozen", now))
        assert len(sink) == 2
        assert [e.payload for e in sink.of_type("order.frozen")] == [{"order_id": "o"}]
        sink.clear()
        assert len(sink) == 0

    def test_sinks_satisfy_protocol(self):
        assert isinstance(NullEventSink(), EventSink)
        assert isinstance(RecordingEventSink(), EventSink)

    def test_event_ids_unique(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert BenefitEvent("x", now).event_id != BenefitEvent("x", now).event_id


# =============================================================================
# Employee directory
# =============================================================================


class TestEmployeeDirectory:

    def test_round_trip_snapshot(self, session, make_snapshot, test_actor_id):
        directory = EmployeeDirectory(session)
        snapshot = make_snapshot(working_days=frozenset({0, 6}), full_name="Aziza")
        directory.register(snapshot, actor_id=test_actor_id)
        loaded = directory.get(snapshot.id)
        assert loaded.working_days == frozenset({0, 6})
        assert loaded.service_type is BenefitKind.LUNCH
        assert loaded.full_name == "Aziza"

    def test_unknown_employee(self, session):
        with pytest.raises(EmployeeNotFoundError):
            EmployeeDirectory(session).get(uuid4())

    def test_resolves_open_benefits(self, session, make_employee, subscribe):
        employee = make_employee()
        sub = subscribe(employee)
        snapshot = EmployeeDirectory(session).get(employee.id)
        assert snapshot.active_lunch_subscription_id == sub.id
        assert snapshot.active_compensation_id is None

    def test_cancelled_benefit_is_not_open(self, session, make_employee, subscribe, lunch_service, test_actor_id):
        employee = make_employee()
        sub = subscribe(employee)
        lunch_service.cancel_subscription(sub.id, test_actor_id)
        assert EmployeeDirectory(session).get(employee.id).active_lunch_subscription_id is None

    def test_list_for_company_ordered_by_name(self, session, make_employee, company_id):
        make_employee(full_name="Bobur")
        make_employee(full_name="Anvar")
        names = [e.full_name for e in EmployeeDirectory(session).list_for_company(company_id)]
        assert names == ["Anvar", "Bobur"]

    def test_update(self, session, make_employee, test_actor_id):
        employee = make_employee()
        directory = EmployeeDirectory(session)
        updated = directory.update(
            EmployeeSnapshot(
                id=employee.id,
                service_type=BenefitKind.COMPENSATION,
                company_id=employee.company_id,
            ),
            actor_id=test_actor_id,
        )
        assert updated.service_type is BenefitKind.COMPENSATION
        assert updated.working_days == frozenset()
