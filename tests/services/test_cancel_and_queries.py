"""
Cancellation and the read side of the workflow service.

Tests cover:
- cancel by the requester or an administrator only
- cancel of resolved or past-deadline requests
- lookups by id and code
- pending work lists per approver (parallel and sequential)
- requester listings and statistics
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import (
    ApprovalStrategy,
    DecisionAction,
    NotificationKind,
    RequestStatus,
)
from approval_kernel.exceptions import (
    CancellationNotAllowedError,
    RequestAlreadyResolvedError,
    RequestExpiredError,
    RequestNotFoundError,
)

ADMIN = "approvals-admin"


class TestCancel:
    def test_requester_cancels(self, workflow, make_configuration, submit, deliver):
        make_configuration()
        request = submit()
        cancelled = workflow.cancel(request.id, "requester", "no longer needed")

        assert cancelled.status == RequestStatus.CANCELLED
        assert cancelled.resolved_at is not None
        event = workflow.history(request.id)[-1]
        assert event.action == DecisionAction.CANCEL
        assert event.justification == "no longer needed"

        resolved = [n for n in deliver() if n.kind == NotificationKind.RESOLVED]
        assert resolved[0].payload["status"] == "cancelled"
        assert resolved[0].recipients[0] == "requester"

    def test_admin_cancels(self, workflow, make_configuration, submit):
        make_configuration()
        request = submit()
        assert workflow.cancel(request.id, ADMIN, "duplicate").status == RequestStatus.CANCELLED

    def test_approver_cannot_cancel(self, workflow, make_configuration, submit):
        make_configuration()
        request = submit()
        with pytest.raises(CancellationNotAllowedError):
            workflow.cancel(request.id, "ana", "not mine")
        assert workflow.get_request(request.id).status == RequestStatus.PENDING

    def test_resolved_request_cannot_be_cancelled(self, workflow, make_configuration, submit):
        make_configuration(ApprovalStrategy.SINGLE)
        request = submit()
        workflow.decide(request.id, "ana", DecisionAction.APPROVE)
        with pytest.raises(RequestAlreadyResolvedError):
            workflow.cancel(request.id, "requester", "too late")

    def test_cancel_after_deadline(self, workflow, make_configuration, submit, clock):
        make_configuration(time_limit_hours=24)
        request = submit()
        clock.set_time(request.expires_at + timedelta(minutes=1))
        with pytest.raises(RequestExpiredError):
            workflow.cancel(request.id, "requester", "late")

    def test_decisions_after_cancel_fail(self, workflow, make_configuration, submit):
        make_configuration()
        request = submit()
        workflow.cancel(request.id, "requester", "withdrawn")
        with pytest.raises(RequestAlreadyResolvedError):
            workflow.decide(request.id, "ana", DecisionAction.APPROVE)


class TestLookups:
    def test_get_by_code(self, workflow, make_configuration, submit):
        make_configuration()
        request = submit(payload={"benefit": "transport", "days": 3})
        found = workflow.get_request_by_code(request.code)
        assert found.id == request.id
        assert found.payload == {"benefit": "transport", "days": 3}

    def test_unknown_code(self, workflow):
        with pytest.raises(RequestNotFoundError):
            workflow.get_request_by_code("APR-1999-000001")

    def test_history_of_unknown_request(self, workflow):
        with pytest.raises(RequestNotFoundError):
            workflow.history(uuid4())


class TestPendingForApprover:
    def test_parallel_lists_every_undecided_approver(self, workflow, make_configuration, submit):
        make_configuration(ApprovalStrategy.UNANIMOUS, ["ana", "bruno"])
        request = submit()
        workflow.decide(request.id, "ana", DecisionAction.APPROVE)
        assert workflow.list_pending_for_approver("ana") == []
        assert [r.id for r in workflow.list_pending_for_approver("bruno")] == [request.id]

    def test_sequential_lists_only_next_in_order(self, workflow, make_configuration, submit):
        make_configuration(
            ApprovalStrategy.UNANIMOUS, ["ana", "bruno"], allow_parallel_approval=False,
        )
        request = submit()
        assert [r.id for r in workflow.list_pending_for_approver("ana")] == [request.id]
        assert workflow.list_pending_for_approver("bruno") == []

    def test_past_deadline_requests_are_not_listed(
        self, workflow, make_configuration, submit, clock,
    ):
        make_configuration(time_limit_hours=24)
        submit()
        clock.advance(hours=25)
        assert workflow.list_pending_for_approver("ana") == []


class TestRequesterListing:
    def test_newest_first_with_status_filter(self, workflow, make_configuration, submit, clock):
        make_configuration(ApprovalStrategy.SINGLE)
        first = submit()
        clock.advance(hours=1)
        second = submit()
        workflow.decide(first.id, "ana", DecisionAction.APPROVE)

        listed = workflow.list_requests_by_requester("requester")
        assert [r.id for r in listed] == [second.id, first.id]

        approved = workflow.list_requests_by_requester("requester", RequestStatus.APPROVED)
        assert [r.id for r in approved] == [first.id]
        assert workflow.list_requests_by_requester("someone-else") == []


class TestStatistics:
    def test_statistics_over_mixed_outcomes(self, workflow, make_configuration, submit, clock):
        make_configuration(ApprovalStrategy.SINGLE)
        approved = submit(org_unit="ops")
        rejected = submit(org_unit="ops")
        submit(org_unit="finance")

        clock.advance(hours=2)
        workflow.decide(approved.id, "ana", DecisionAction.APPROVE)
        workflow.decide(rejected.id, "ana", DecisionAction.REJECT)

        stats = workflow.statistics()
        assert stats.total == 3
        assert stats.by_status["approved"] == 1
        assert stats.by_status["pending"] == 1
        assert stats.approval_rate == Decimal("33.33")
        assert stats.average_approval_hours == Decimal("2.00")
        assert stats.within_deadline == 2
        assert stats.sla_compliance_rate == Decimal("100.00")
        assert stats.by_action_type["benefit_decision"].total == 3
        assert stats.by_approver["ana"].approvals == 1
        assert stats.by_approver["ana"].rejections == 1

        ops = workflow.statistics(org_unit="ops")
        assert ops.total == 2
        assert ops.rejection_rate == Decimal("50.00")

        finance = workflow.statistics(org_unit="finance")
        assert finance.by_approver == {}

    def test_statistics_window(self, workflow, make_configuration, submit, clock):
        make_configuration()
        submit()
        clock.advance(hours=48)
        submit()
        assert workflow.statistics(since=clock.now()).total == 1
        assert workflow.statistics(until=clock.now()).total == 1
