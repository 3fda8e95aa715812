"""
Tests for the pure timer evaluation engine.

Tests cover:
- expiry exclusivity
- escalation levels since creation, catch-up and cap
- reminders (suppressed in an escalating tick)
- expiry warnings per threshold
- idempotence once the decision has been applied
"""

from dataclasses import replace
from datetime import datetime, time, timedelta, timezone
from uuid import uuid4

from approval_engines.timers import evaluate_timers
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalRequest,
    ApprovalStrategy,
    BusinessHours,
    RequestStatus,
)

NOW = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)


def make_config(**overrides) -> ApprovalConfiguration:
    values = dict(
        action_type="benefit_decision",
        strategy=ApprovalStrategy.MAJORITY,
        time_limit_hours=24,
    )
    values.update(overrides)
    return ApprovalConfiguration(**values)


def make_request(config: ApprovalConfiguration, created_at: datetime = NOW, **overrides):
    values = dict(
        id=uuid4(),
        code="APR-2024-000001",
        configuration_id=config.id,
        action_type=config.action_type,
        status=RequestStatus.PENDING,
        required_approvals=2,
        eligible_approvers=("ana", "bruno", "carla"),
        requester_id="requester",
        created_at=created_at,
        expires_at=created_at + timedelta(hours=config.time_limit_hours),
    )
    values.update(overrides)
    return ApprovalRequest(**values)


def timers(request, config, now):
    return evaluate_timers(request=request, configuration=config, now=now)


class TestExpiry:
    def test_expires_at_deadline_and_nothing_else_fires(self):
        config = make_config(reminder_hours=1, escalation_hours=1, expiry_warning_hours=(2,))
        request = make_request(config)
        decision = timers(request, config, request.expires_at)
        assert decision.expire
        assert decision.escalation_levels == ()
        assert not decision.remind
        assert decision.expiry_warnings == ()

    def test_terminal_request_has_no_work(self):
        config = make_config(reminder_hours=1)
        request = make_request(config, status=RequestStatus.APPROVED)
        assert not timers(request, config, NOW + timedelta(hours=30)).has_work


class TestEscalation:
    def test_catches_up_every_crossed_level(self):
        config = make_config(escalation_hours=6, max_escalation_level=3)
        request = make_request(config)
        assert timers(request, config, NOW + timedelta(hours=13)).escalation_levels == (1, 2)

    def test_capped_by_max_level(self):
        config = make_config(escalation_hours=1, max_escalation_level=2)
        request = make_request(config)
        assert timers(request, config, NOW + timedelta(hours=10)).escalation_levels == (1, 2)

    def test_already_escalated_levels_do_not_refire(self):
        config = make_config(escalation_hours=6)
        request = make_request(config, escalation_count=2)
        assert timers(request, config, NOW + timedelta(hours=13)).escalation_levels == ()

    def test_measured_in_business_time(self):
        config = make_config(
            escalation_hours=2,
            time_limit_hours=100,
            business_hours=BusinessHours(frozenset(range(5)), time(8), time(18)),
        )
        friday = datetime(2024, 1, 5, 17, 0, tzinfo=timezone.utc)
        request = make_request(config, created_at=friday)
        saturday = datetime(2024, 1, 6, 12, 0, tzinfo=timezone.utc)
        monday = datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)
        assert timers(request, config, saturday).escalation_levels == ()
        assert timers(request, config, monday).escalation_levels == (1,)


class TestReminders:
    def test_reminder_due_since_creation(self):
        config = make_config(reminder_hours=4)
        request = make_request(config)
        assert not timers(request, config, NOW + timedelta(hours=3)).remind
        assert timers(request, config, NOW + timedelta(hours=5)).remind

    def test_reminder_interval_restarts_from_last_reminder(self):
        config = make_config(reminder_hours=4)
        request = make_request(config, last_reminder_at=NOW + timedelta(hours=4))
        assert not timers(request, config, NOW + timedelta(hours=5)).remind

    def test_no_reminder_in_escalating_tick(self):
        config = make_config(reminder_hours=2, escalation_hours=3)
        request = make_request(config)
        decision = timers(request, config, NOW + timedelta(hours=3))
        assert decision.escalation_levels == (1,)
        assert not decision.remind


class TestExpiryWarnings:
    def test_each_threshold_fires_once(self):
        config = make_config(expiry_warning_hours=(2, 4))
        request = make_request(config)
        assert timers(request, config, NOW + timedelta(hours=19)).expiry_warnings == ()
        assert timers(request, config, NOW + timedelta(hours=21)).expiry_warnings == (4,)
        warned = replace(request, expiry_warnings_sent=1)
        assert timers(warned, config, NOW + timedelta(hours=21)).expiry_warnings == ()
        assert timers(warned, config, NOW + timedelta(hours=23)).expiry_warnings == (2,)

    def test_late_tick_sends_all_crossed_thresholds(self):
        config = make_config(expiry_warning_hours=(4, 2))
        request = make_request(config)
        assert timers(request, config, NOW + timedelta(hours=23)).expiry_warnings == (4, 2)


class TestIdempotence:
    def test_applied_decision_yields_no_more_work(self):
        config = make_config(
            reminder_hours=2, escalation_hours=5, expiry_warning_hours=(20,),
        )
        request = make_request(config)
        now = NOW + timedelta(hours=11)
        decision = timers(request, config, now)
        assert decision.escalation_levels == (1, 2)
        assert decision.expiry_warnings == (20,)

        applied = replace(
            request,
            escalation_count=decision.escalation_levels[-1],
            last_escalation_at=now,
            last_reminder_at=now,
            expiry_warnings_sent=len(decision.expiry_warnings),
        )
        assert not timers(applied, config, now).has_work
