"""
End-to-end workflow behaviour against a real database.

Tests cover:
- submit snapshots the configuration and the eligible approvers
- approver value limits narrow the eligible set
- MAJORITY of three resolves APPROVED on the second approval
- UNANIMOUS rejects on the first rejection and refuses later decisions
- a 24h request expires on the first tick past its deadline
- reminders count business hours across a weekend
"""

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import (
    ApprovalStrategy,
    Approver,
    BusinessHours,
    DecisionAction,
    NotificationKind,
    RequestStatus,
)
from approval_kernel.exceptions import (
    MisconfiguredApproversError,
    NoMatchingConfigurationError,
    RequestAlreadyResolvedError,
)


class TestSubmit:
    def test_submit_snapshots_configuration(self, workflow, make_configuration, submit, clock):
        config = make_configuration(ApprovalStrategy.MAJORITY, ["ana", "bruno", "carla"])
        request = submit(value=Decimal("1500.00"))

        assert request.status == RequestStatus.PENDING
        assert request.configuration_id == config.id
        assert request.eligible_approvers == ("ana", "bruno", "carla")
        assert request.required_approvals == 2
        assert request.created_at == clock.now()
        assert request.expires_at == clock.now() + timedelta(hours=48)
        assert request.code == "APR-2024-000001"
        assert request.anchor_hash

    def test_max_approvals_does_not_lower_the_majority(self, make_configuration, submit):
        make_configuration(
            ApprovalStrategy.MAJORITY, ["ana", "bruno", "carla", "dora", "ed"], max_approvals=2,
        )
        assert submit().required_approvals == 3

    def test_codes_are_sequential(self, make_configuration, submit):
        make_configuration()
        first = submit()
        second = submit()
        assert (first.code, second.code) == ("APR-2024-000001", "APR-2024-000002")

    def test_requester_is_excluded_from_eligible(self, make_configuration, submit):
        make_configuration(ApprovalStrategy.SINGLE, ["ana", "bruno"])
        request = submit(requester_id="ana")
        assert request.eligible_approvers == ("bruno",)

    def test_too_few_approvers_after_exclusion(self, make_configuration, submit):
        make_configuration(ApprovalStrategy.QUORUM_N, ["ana", "bruno"], min_approvals=2)
        with pytest.raises(MisconfiguredApproversError):
            submit(requester_id="ana")

    def test_no_matching_configuration(self, submit):
        with pytest.raises(NoMatchingConfigurationError):
            submit(action_type="unknown_action")

    def test_submission_notifies_approvers(self, make_configuration, submit, deliver):
        make_configuration(ApprovalStrategy.MAJORITY, ["ana", "bruno", "carla"])
        request = submit()
        sent = deliver()
        assert len(sent) == 1
        assert sent[0].kind == NotificationKind.SUBMITTED
        assert sent[0].recipients == ("ana", "bruno", "carla")
        assert sent[0].request_code == request.code
        assert sent[0].channel_hints == ("email",)

    def test_sequential_submission_notifies_first_approver_only(
        self, make_configuration, submit, deliver,
    ):
        make_configuration(
            ApprovalStrategy.UNANIMOUS, ["ana", "bruno"], allow_parallel_approval=False,
        )
        submit()
        assert deliver()[0].recipients == ("ana",)

    def test_nothing_is_published_when_submit_fails(self, submit, dispatcher):
        with pytest.raises(NoMatchingConfigurationError):
            submit(action_type="unknown_action")
        assert dispatcher.pending == 0


def limited(user_id, min_value=None, max_value=None):
    return Approver(
        user_id=user_id,
        configuration_id=uuid4(),
        min_value=Decimal(min_value) if min_value is not None else None,
        max_value=Decimal(max_value) if max_value is not None else None,
    )


class TestApproverValueLimits:
    def test_value_outside_limits_drops_approver(self, make_configuration, submit):
        make_configuration(
            ApprovalStrategy.MAJORITY,
            ["ana", limited("bruno", max_value="1000"), limited("carla", min_value="5000")],
        )

        small = submit(value="800")
        assert small.eligible_approvers == ("ana", "bruno")
        assert small.required_approvals == 2

        large = submit(value="7500.00")
        assert large.eligible_approvers == ("ana", "carla")

    def test_bounds_are_inclusive(self, make_configuration, submit):
        make_configuration(
            ApprovalStrategy.SINGLE,
            [limited("ana", min_value="100", max_value="1000"), "bruno"],
        )
        assert submit(value="100").eligible_approvers == ("ana", "bruno")
        assert submit(value="1000").eligible_approvers == ("ana", "bruno")
        assert submit(value="1000.01").eligible_approvers == ("bruno",)

    def test_limited_approver_skipped_without_value(self, make_configuration, submit):
        make_configuration(ApprovalStrategy.SINGLE, [limited("ana", max_value="1000"), "bruno"])
        assert submit().eligible_approvers == ("bruno",)

    def test_misconfigured_counts_filtered_approvers(self, make_configuration, submit):
        config = make_configuration(
            ApprovalStrategy.QUORUM_N,
            ["ana", limited("bruno", max_value="1000"), limited("carla", max_value="1000")],
            min_approvals=2,
        )
        assert submit(value="900").required_approvals == 2

        with pytest.raises(MisconfiguredApproversError) as exc_info:
            submit(value="2000")
        assert exc_info.value.configuration_id == config.id
        assert exc_info.value.eligible == 1
        assert exc_info.value.required == 2


class TestMajorityResolution:
    def test_second_approval_resolves(self, workflow, make_configuration, submit, deliver):
        make_configuration(ApprovalStrategy.MAJORITY, ["ana", "bruno", "carla"])
        request = submit()

        after_first = workflow.decide(request.id, "ana", DecisionAction.APPROVE)
        assert after_first.status == RequestStatus.PENDING
        assert after_first.approvals_received == 1

        after_second = workflow.decide(request.id, "bruno", "approve")
        assert after_second.status == RequestStatus.APPROVED
        assert after_second.approvals_received == 2
        assert after_second.resolved_at is not None

        resolved = [n for n in deliver() if n.kind == NotificationKind.RESOLVED]
        assert len(resolved) == 1
        assert resolved[0].payload["status"] == "approved"
        assert "requester" in resolved[0].recipients


class TestUnanimousRejection:
    def test_first_rejection_resolves(self, workflow, make_configuration, submit):
        make_configuration(ApprovalStrategy.UNANIMOUS, ["ana", "bruno", "carla"], time_limit_hours=24)
        request = submit()

        workflow.decide(request.id, "ana", DecisionAction.APPROVE)
        rejected = workflow.decide(request.id, "bruno", DecisionAction.REJECT, "budget exhausted")
        assert rejected.status == RequestStatus.REJECTED

        with pytest.raises(RequestAlreadyResolvedError):
            workflow.decide(request.id, "carla", DecisionAction.APPROVE)

        history = workflow.history(request.id)
        assert [e.action for e in history] == [DecisionAction.APPROVE, DecisionAction.REJECT]
        assert history[1].justification == "budget exhausted"


class TestExpiryOnTick:
    def test_tick_past_deadline_expires(self, workflow, make_configuration, submit, clock):
        make_configuration(ApprovalStrategy.MAJORITY, time_limit_hours=24)
        request = submit()

        report = workflow.tick(now=request.created_at + timedelta(hours=25))
        assert report.expired == 1

        expired = workflow.get_request(request.id)
        assert expired.status == RequestStatus.EXPIRED
        history = workflow.history(request.id)
        assert len(history) == 1
        assert history[0].action == DecisionAction.EXPIRE
        assert history[0].is_automatic

    def test_repeated_tick_is_idempotent(self, workflow, make_configuration, submit):
        make_configuration(ApprovalStrategy.MAJORITY, time_limit_hours=24)
        request = submit()
        at = request.created_at + timedelta(hours=25)

        workflow.tick(now=at)
        second = workflow.tick(now=at)
        assert second.expired == 0
        assert len(workflow.history(request.id)) == 1


class TestBusinessHourReminders:
    def test_reminder_counts_business_hours(
        self, workflow, make_configuration, submit, clock, deliver,
    ):
        make_configuration(
            ApprovalStrategy.MAJORITY,
            reminder_hours=2,
            business_hours=BusinessHours(frozenset(range(5)), time(8), time(18), "UTC"),
        )
        friday_17 = datetime(2024, 1, 5, 17, 0, tzinfo=timezone.utc)
        clock.set_time(friday_17)
        request = submit()

        early = workflow.tick(now=datetime(2024, 1, 5, 17, 30, tzinfo=timezone.utc))
        assert early.reminded == 0

        monday = workflow.tick(now=datetime(2024, 1, 8, 9, 30, tzinfo=timezone.utc))
        assert monday.reminded == 1

        reminded = workflow.get_request(request.id)
        assert reminded.reminder_count == 1
        assert reminded.last_reminder_at == datetime(2024, 1, 8, 9, 30, tzinfo=timezone.utc)
        assert any(n.kind == NotificationKind.REMINDER for n in deliver())
