"""
Pytest fixtures for the approval engine test suite.

Provides:
- A file-backed SQLite database per test (real ORM models, real listeners)
- A DeterministicClock pinned to a Wednesday morning
- An in-memory notification sink behind an unstarted dispatcher
  (call ``drain()`` to flush queued notifications synchronously)
- Factories for configurations and submitted requests

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped and recreated per test.
"""

import json
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from approval_kernel.db.engine import build_engine, create_tables, drop_tables, session_scope
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalStrategy,
    Approver,
    StaticUserDirectory,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.repositories import SqlConfigurationRepository
from approval_kernel.services.notification import (
    InMemoryNotificationSink,
    NotificationDispatcher,
)
from approval_kernel.services.rule_store import RuleStore
from approval_kernel.services.workflow_service import ApprovalWorkflowService

# Wednesday 2024-01-03 10:00 UTC
START = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)

ADMIN = "approvals-admin"
RETIRED = "retired-user"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_request_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("DATABASE_URL", f"sqlite:///{tmp_path / 'approvals.db'}")


@pytest.fixture
def db_engine(database_url):
    engine = build_engine(database_url, pool_size=10, max_overflow=10)
    drop_tables(engine)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# Engine components
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(START)


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def dispatcher(sink):
    return NotificationDispatcher(sink, max_queue_size=500)


@pytest.fixture
def deliver(dispatcher, sink):
    """Flush queued notifications and return everything the sink has seen."""

    def _deliver():
        dispatcher.drain()
        return sink.sent

    return _deliver


@pytest.fixture
def user_directory():
    return StaticUserDirectory(
        admin_user_ids=frozenset({ADMIN}),
        inactive_user_ids=frozenset({RETIRED}),
    )


@pytest.fixture
def workflow(session_factory, clock, dispatcher, user_directory):
    return ApprovalWorkflowService(
        session_factory,
        clock=clock,
        dispatcher=dispatcher,
        user_directory=user_directory,
        max_optimistic_retries=3,
        delegation_max_depth=5,
        default_delegation_hours=24,
    )


@pytest.fixture
def make_configuration(session_factory, clock):
    """Persist a configuration with approvers; returns the stored DTO.

    Usage::

        config = make_configuration(ApprovalStrategy.MAJORITY, ["ana", "bruno", "carla"])

    Approver entries may be user ids or ``Approver`` values (for value
    limits); either way they are bound in order.
    """

    def _make(
        strategy: ApprovalStrategy = ApprovalStrategy.MAJORITY,
        approvers: list[str | Approver] | tuple[str, ...] = ("ana", "bruno", "carla"),
        action_type: str = "benefit_decision",
        time_limit_hours: int = 48,
        **overrides,
    ) -> ApprovalConfiguration:
        config = ApprovalConfiguration(
            action_type=action_type,
            strategy=strategy,
            time_limit_hours=time_limit_hours,
            name=overrides.pop("name", f"{action_type}-{strategy.value}"),
            min_approvals=overrides.pop("min_approvals", 1),
            **overrides,
        )
        bindings = [
            replace(entry, configuration_id=config.id, order=index)
            if isinstance(entry, Approver)
            else Approver(user_id=entry, configuration_id=config.id, order=index)
            for index, entry in enumerate(approvers, start=1)
        ]
        with session_scope(session_factory) as session:
            store = RuleStore(SqlConfigurationRepository(session), clock)
            return store.create_configuration(config, bindings)

    return _make


@pytest.fixture
def submit(workflow):
    """Submit a request with sensible defaults."""

    def _submit(
        action_type: str = "benefit_decision",
        requester_id: str = "requester",
        payload: dict | None = None,
        **kwargs,
    ):
        return workflow.submit(
            action_type,
            requester_id,
            payload if payload is not None else {"benefit": "housing"},
            **kwargs,
        )

    return _submit
