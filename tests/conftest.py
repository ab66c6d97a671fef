"""
Pytest fixtures for the meal-benefit engine test suite.

Provides:
- A database engine per test session (SQLite file by default)
- Per-test sessions isolated by an outer transaction that is rolled back
- Deterministic clock, business config and employee factories

Environment Variables:
- DATABASE_URL: database URL to run against (e.g. a PostgreSQL URL).
  If not set, a SQLite file under pytest's temp directory is used.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from meal_config import reset_active_config
from meal_config.schema import BusinessConfig
from meal_engines.eligibility import BenefitKind, EmployeeSnapshot, InviteStatus, ShiftType
from meal_engines.schedule_types import Recurrence
from meal_kernel.db.engine import create_tables, drop_tables, init_engine_from_url, reset_engine
from meal_kernel.domain.clock import DeterministicClock
from meal_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from meal_modules.compensation.models import CompensationRequest
from meal_modules.compensation.service import CompensationService
from meal_modules.employees.directory import EmployeeDirectory
from meal_modules.events import RecordingEventSink
from meal_modules.lunch.models import LunchSubscriptionRequest
from meal_modules.lunch.service import LunchSubscriptionService


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()
TEST_COMPANY_ID = uuid4()

MONDAY = date(2024, 1, 1)
COMBO = "Комбо 25"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _reset_config():
    reset_active_config()
    yield
    reset_active_config()


@pytest.fixture
def captured_logs():
    """
    Capture meal_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lunch_service):
            lunch_service.freeze_order(...)
            logs = captured_logs()
            assert any(r["message"] == "order_frozen" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("meal_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine(tmp_path_factory):
    """Single engine for the entire test session."""
    default_url = f"sqlite:///{tmp_path_factory.mktemp('db') / 'meal_test.sqlite'}"
    eng = init_engine_from_url(os.environ.get("DATABASE_URL", default_url), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables(db_engine)
    create_tables(db_engine)
    yield
    drop_tables(db_engine)


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_block`` pattern:
    - Opens a dedicated connection with an outer transaction
    - Creates a session that *joins* the outer transaction
    - Any ``session.commit()`` inside the test releases a savepoint -- it
      does NOT actually commit to the database
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def company_id() -> UUID:
    return TEST_COMPANY_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Monday 2024-01-01 09:00 UTC, one hour before the default cutoff."""
    return DeterministicClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def business_config() -> BusinessConfig:
    return BusinessConfig()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def lunch_service(session, deterministic_clock, business_config, events) -> LunchSubscriptionService:
    return LunchSubscriptionService(
        session, clock=deterministic_clock, config=business_config, events=events,
    )


@pytest.fixture
def compensation_service(session, deterministic_clock, business_config, events) -> CompensationService:
    return CompensationService(
        session, clock=deterministic_clock, config=business_config, events=events,
    )


@pytest.fixture
def make_snapshot():
    """Build an EmployeeSnapshot without touching the database."""

    def _make(**overrides) -> EmployeeSnapshot:
        values = {
            "id": uuid4(),
            "service_type": BenefitKind.LUNCH,
            "working_days": frozenset({1, 2, 3, 4, 5}),
            "company_id": TEST_COMPANY_ID,
            "shift_type": ShiftType.DAY,
            "invite_status": InviteStatus.ACCEPTED,
        }
        values.update(overrides)
        return EmployeeSnapshot(**values)

    return _make


@pytest.fixture
def make_employee(session, make_snapshot, test_actor_id):
    """Register an employee and return its snapshot."""
    directory = EmployeeDirectory(session)

    def _make(**overrides) -> EmployeeSnapshot:
        return directory.register(make_snapshot(**overrides), actor_id=test_actor_id)

    return _make


@pytest.fixture
def subscribe(lunch_service, test_actor_id):
    """Create one lunch subscription and return it (fails the test on rejection)."""

    def _subscribe(
        employee: EmployeeSnapshot,
        start: date = MONDAY,
        end: date = date(2024, 1, 12),
        recurrence: Recurrence | None = None,
        combo_type: str = COMBO,
        auto_renew: bool = False,
    ):
        result = lunch_service.create_subscriptions(
            LunchSubscriptionRequest(
                employee_ids=(employee.id,),
                combo_type=combo_type,
                recurrence=recurrence or Recurrence.every_day(),
                start_date=start,
                end_date=end,
                auto_renew=auto_renew,
            ),
            actor_id=test_actor_id,
        )
        assert not result.errors, result.summary
        return result.created[0]

    return _subscribe


@pytest.fixture
def grant_compensation(compensation_service, test_actor_id):
    """Create one compensation and return it (fails the test on rejection)."""

    def _grant(
        employee: EmployeeSnapshot,
        daily_limit: Decimal = Decimal("100.00"),
        start: date = MONDAY,
        end: date = date(2024, 1, 31),
        total_budget: Decimal | None = None,
        carry_over: bool = False,
        auto_renew: bool = False,
    ):
        result = compensation_service.create_compensations(
            CompensationRequest(
                employee_ids=(employee.id,),
                daily_limit=daily_limit,
                start_date=start,
                end_date=end,
                total_budget=total_budget,
                carry_over=carry_over,
                auto_renew=auto_renew,
            ),
            actor_id=test_actor_id,
        )
        assert not result.errors, result.summary
        return result.created[0]

    return _grant
