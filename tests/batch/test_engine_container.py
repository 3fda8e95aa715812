"""
Tests for the ApprovalEngine container.

Wires a complete engine from settings against a temporary SQLite file,
seeds the packaged example rule set and drives one request end to end.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from approval_batch import ApprovalEngine
from approval_config import DEFAULT_SETTINGS_PATH, get_engine_settings
from approval_kernel.domain.approval import DecisionAction, NotificationKind, RequestStatus
from approval_kernel.services.notification import InMemoryNotificationSink

EXAMPLE = DEFAULT_SETTINGS_PATH.parent / "example_rules.yaml"


@pytest.fixture
def engine(tmp_path, clock):
    settings = replace(
        get_engine_settings(),
        database_url=f"sqlite:///{tmp_path / 'engine.db'}",
        admin_user_ids=frozenset({"approvals-admin"}),
    )
    sink = InMemoryNotificationSink()
    container = ApprovalEngine.from_settings(settings, clock=clock, sink=sink)
    yield container
    container.dispose()


class TestRuleSetSeeding:
    def test_seeds_every_entry(self, engine):
        created = engine.load_rule_set(EXAMPLE)
        assert {c.name for c in created} == {
            "benefit-decision-standard",
            "benefit-decision-large",
            "financial-change-quorum",
        }
        assert all(c.created_at == engine.clock.now() for c in created)

    def test_loading_twice_is_idempotent(self, engine, captured_logs):
        engine.load_rule_set(EXAMPLE)
        assert engine.load_rule_set(EXAMPLE) == []
        skipped = [r for r in captured_logs() if r["message"] == "rule_set_entry_skipped"]
        assert len(skipped) == 3


class TestEndToEnd:
    def test_value_routes_to_configuration(self, engine):
        engine.load_rule_set(EXAMPLE)
        workflow = engine.workflow

        small = workflow.submit("benefit_decision", "requester", {"b": 1}, value=Decimal("500"))
        large = workflow.submit("benefit_decision", "requester", {"b": 2}, value=Decimal("25000"))

        assert small.required_approvals == 2
        assert large.required_approvals == 3
        assert small.configuration_id != large.configuration_id

    def test_majority_request_through_container(self, engine):
        engine.load_rule_set(EXAMPLE)
        workflow = engine.workflow
        request = workflow.submit("benefit_decision", "requester", {"b": 1}, value=Decimal("500"))

        workflow.decide(request.id, "ana", DecisionAction.APPROVE)
        approved = workflow.decide(request.id, "carla", DecisionAction.APPROVE)
        assert approved.status == RequestStatus.APPROVED
        assert workflow.verify_chain(request.id)

        engine.dispatcher.drain()
        kinds = [n.kind for n in engine.dispatcher.sink.sent]
        assert kinds == [NotificationKind.SUBMITTED, NotificationKind.RESOLVED]

    def test_context_manager_starts_and_stops_threads(self, engine):
        with engine:
            assert engine.scheduler.is_running
            assert engine.dispatcher.is_running
        assert not engine.scheduler.is_running
        assert not engine.dispatcher.is_running
