"""
Timer sweep (tick) against a real database.

Tests cover:
- automatic escalation events and notifications
- expiry warnings per threshold
- reminders addressed to delegates
- interruption through a stop event
- requests resolved before the sweep are left alone
"""

import threading
from datetime import timedelta

from approval_kernel.domain.approval import (
    ApprovalStrategy,
    DecisionAction,
    NotificationKind,
    RequestStatus,
)


class TestEscalation:
    def test_late_tick_records_every_level(self, workflow, make_configuration, submit, deliver):
        make_configuration(
            escalation_hours=4,
            max_escalation_level=2,
            escalation_recipients=("director",),
        )
        request = submit()

        report = workflow.tick(now=request.created_at + timedelta(hours=13))
        assert report.escalated == 2
        assert report.reminded == 0

        events = workflow.history(request.id)
        assert [e.escalation_level for e in events] == [1, 2]
        assert all(e.is_automatic and e.action == DecisionAction.ESCALATE for e in events)

        escalated = workflow.get_request(request.id)
        assert escalated.escalation_count == 2
        assert escalated.status == RequestStatus.PENDING

        notes = [n for n in deliver() if n.kind == NotificationKind.ESCALATION]
        assert len(notes) == 1
        assert notes[0].recipients == ("director",)
        assert notes[0].payload["levels"] == [1, 2]

    def test_escalation_without_recipients_goes_to_holders(
        self, workflow, make_configuration, submit, deliver,
    ):
        make_configuration(escalation_hours=4)
        request = submit()
        workflow.decide(request.id, "ana", DecisionAction.APPROVE, "ok")
        workflow.tick(now=request.created_at + timedelta(hours=5))
        notes = [n for n in deliver() if n.kind == NotificationKind.ESCALATION]
        assert notes[0].recipients == ("bruno", "carla")

    def test_capped_request_stops_escalating(self, workflow, make_configuration, submit):
        make_configuration(escalation_hours=1, max_escalation_level=1)
        request = submit()
        workflow.tick(now=request.created_at + timedelta(hours=2))
        again = workflow.tick(now=request.created_at + timedelta(hours=10))
        assert again.escalated == 0
        assert len(workflow.history(request.id)) == 1


class TestExpiryWarnings:
    def test_each_threshold_warns_once(self, workflow, make_configuration, submit, deliver):
        make_configuration(time_limit_hours=24, expiry_warning_hours=(4, 1))
        request = submit()

        assert workflow.tick(now=request.created_at + timedelta(hours=21)).warned == 1
        assert workflow.tick(now=request.created_at + timedelta(hours=22)).warned == 0
        assert workflow.tick(now=request.created_at + timedelta(hours=23, minutes=30)).warned == 1

        warnings = [n for n in deliver() if n.kind == NotificationKind.EXPIRY_WARNING]
        assert [n.payload["hours_before_expiry"] for n in warnings] == [4, 1]
        assert workflow.get_request(request.id).expiry_warnings_sent == 2
        # Warnings notify but do not extend the chain
        assert workflow.history(request.id) == []


class TestReminders:
    def test_reminder_goes_to_delegate(self, workflow, make_configuration, submit, deliver):
        make_configuration(ApprovalStrategy.UNANIMOUS, ["ana", "bruno"], reminder_hours=2)
        request = submit()
        workflow.delegate("bruno", "dora", valid_until=request.expires_at)

        assert workflow.tick(now=request.created_at + timedelta(hours=3)).reminded == 1
        reminders = [n for n in deliver() if n.kind == NotificationKind.REMINDER]
        assert reminders[0].recipients == ("ana", "dora")

    def test_reminder_interval_restarts(self, workflow, make_configuration, submit):
        make_configuration(reminder_hours=2)
        request = submit()
        workflow.tick(now=request.created_at + timedelta(hours=2))
        assert workflow.tick(now=request.created_at + timedelta(hours=3)).reminded == 0
        assert workflow.tick(now=request.created_at + timedelta(hours=4)).reminded == 1
        assert workflow.get_request(request.id).reminder_count == 2


class TestSweepScope:
    def test_resolved_requests_are_skipped(self, workflow, make_configuration, submit):
        make_configuration(ApprovalStrategy.SINGLE, time_limit_hours=24)
        request = submit()
        workflow.decide(request.id, "ana", DecisionAction.APPROVE)

        report = workflow.tick(now=request.created_at + timedelta(hours=30))
        assert report.scanned == 0
        assert workflow.get_request(request.id).status == RequestStatus.APPROVED

    def test_stop_event_interrupts(self, workflow, make_configuration, submit):
        make_configuration(time_limit_hours=24)
        first = submit()
        submit()
        stop = threading.Event()
        stop.set()

        report = workflow.tick(now=first.created_at + timedelta(hours=30), stop_event=stop)
        assert report.interrupted
        assert report.scanned == 0
        assert workflow.get_request(first.id).status == RequestStatus.PENDING

    def test_sweep_logs_summary(self, workflow, make_configuration, submit, captured_logs):
        make_configuration(time_limit_hours=24)
        request = submit()
        workflow.tick(now=request.created_at + timedelta(hours=30))

        summary = [r for r in captured_logs() if r["message"] == "timer_sweep_completed"]
        assert summary[0]["expired"] == 1
        assert summary[0]["tick_id"]
