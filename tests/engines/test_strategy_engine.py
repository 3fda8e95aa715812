"""
Tests for the pure strategy evaluation engine.

Tests cover:
- required_approvals / minimum_approvers per strategy
- evaluate_tally: approval thresholds and early rejection
- evaluate_request: terminal passthrough and expiry boundary
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from approval_engines.strategy import (
    evaluate_request,
    evaluate_tally,
    minimum_approvers,
    required_approvals,
)
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalRequest,
    ApprovalStrategy,
    RequestStatus,
)

NOW = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)


def make_config(strategy: ApprovalStrategy, min_approvals: int = 1) -> ApprovalConfiguration:
    return ApprovalConfiguration(
        action_type="benefit_decision",
        strategy=strategy,
        time_limit_hours=24,
        min_approvals=min_approvals,
    )


def make_request(
    config: ApprovalConfiguration,
    approvers: tuple[str, ...] = ("ana", "bruno", "carla"),
    approvals: int = 0,
    rejections: int = 0,
    status: RequestStatus = RequestStatus.PENDING,
) -> ApprovalRequest:
    return ApprovalRequest(
        id=uuid4(),
        code="APR-2024-000001",
        configuration_id=config.id,
        action_type=config.action_type,
        status=status,
        required_approvals=required_approvals(
            config.strategy, config.min_approvals, len(approvers),
        ),
        eligible_approvers=approvers,
        requester_id="requester",
        created_at=NOW,
        expires_at=NOW + timedelta(hours=24),
        approvals_received=approvals,
        rejections_received=rejections,
    )


class TestRequiredApprovals:
    def test_single_needs_one(self):
        assert required_approvals(ApprovalStrategy.SINGLE, 3, 5) == 1

    def test_quorum_uses_min_approvals(self):
        assert required_approvals(ApprovalStrategy.QUORUM_N, 2, 4) == 2

    @pytest.mark.parametrize("total,expected", [(1, 1), (2, 2), (3, 2), (4, 3), (5, 3)])
    def test_majority_is_strict_half(self, total, expected):
        assert required_approvals(ApprovalStrategy.MAJORITY, 1, total) == expected

    def test_unanimous_needs_everyone(self):
        assert required_approvals(ApprovalStrategy.UNANIMOUS, 1, 4) == 4

    def test_minimum_approvers(self):
        assert minimum_approvers(ApprovalStrategy.SINGLE, 5) == 1
        assert minimum_approvers(ApprovalStrategy.QUORUM_N, 3) == 3
        assert minimum_approvers(ApprovalStrategy.UNANIMOUS, 0) == 1


class TestEvaluateTally:
    def test_unanimous_rejects_on_first_rejection(self):
        status = evaluate_tally(ApprovalStrategy.UNANIMOUS, 2, 1, 4, 4)
        assert status == RequestStatus.REJECTED

    def test_unanimous_approves_when_all_approve(self):
        assert evaluate_tally(ApprovalStrategy.UNANIMOUS, 3, 0, 3, 3) == RequestStatus.APPROVED

    def test_unanimous_pending_until_complete(self):
        assert evaluate_tally(ApprovalStrategy.UNANIMOUS, 2, 0, 3, 3) == RequestStatus.PENDING

    def test_majority_approves_past_half(self):
        assert evaluate_tally(ApprovalStrategy.MAJORITY, 2, 0, 3, 2) == RequestStatus.APPROVED

    def test_majority_early_rejection_when_majority_impossible(self):
        # 3 approvers, 2 rejections: at most 1 approval remains possible
        assert evaluate_tally(ApprovalStrategy.MAJORITY, 0, 2, 3, 2) == RequestStatus.REJECTED

    def test_majority_even_split_is_rejection(self):
        assert evaluate_tally(ApprovalStrategy.MAJORITY, 2, 2, 4, 3) == RequestStatus.REJECTED

    def test_majority_pending_while_still_reachable(self):
        assert evaluate_tally(ApprovalStrategy.MAJORITY, 1, 1, 3, 2) == RequestStatus.PENDING

    def test_quorum_approves_at_threshold(self):
        assert evaluate_tally(ApprovalStrategy.QUORUM_N, 2, 1, 4, 2) == RequestStatus.APPROVED

    def test_quorum_rejects_when_unreachable(self):
        assert evaluate_tally(ApprovalStrategy.QUORUM_N, 1, 3, 4, 2) == RequestStatus.REJECTED

    def test_single_first_decision_wins(self):
        assert evaluate_tally(ApprovalStrategy.SINGLE, 1, 0, 3, 1) == RequestStatus.APPROVED
        assert evaluate_tally(ApprovalStrategy.SINGLE, 0, 1, 3, 1) == RequestStatus.REJECTED
        assert evaluate_tally(ApprovalStrategy.SINGLE, 0, 0, 3, 1) == RequestStatus.PENDING


class TestEvaluateRequest:
    def test_terminal_status_is_returned_unchanged(self):
        config = make_config(ApprovalStrategy.MAJORITY)
        request = make_request(config, approvals=0, status=RequestStatus.CANCELLED)
        assert evaluate_request(request=request, configuration=config, now=NOW) == (
            RequestStatus.CANCELLED
        )

    def test_expiry_is_inclusive_of_deadline(self):
        config = make_config(ApprovalStrategy.MAJORITY)
        request = make_request(config, approvals=1)
        status = evaluate_request(
            request=request, configuration=config, now=request.expires_at,
        )
        assert status == RequestStatus.EXPIRED

    def test_just_before_deadline_is_pending(self):
        config = make_config(ApprovalStrategy.MAJORITY)
        request = make_request(config, approvals=1)
        status = evaluate_request(
            request=request,
            configuration=config,
            now=request.expires_at - timedelta(microseconds=1),
        )
        assert status == RequestStatus.PENDING

    def test_uses_snapshot_required_approvals(self):
        config = make_config(ApprovalStrategy.QUORUM_N, min_approvals=2)
        request = make_request(config, approvals=2)
        # A later edit of the configuration does not change the frozen requirement
        edited = make_config(ApprovalStrategy.QUORUM_N, min_approvals=3)
        assert evaluate_request(request=request, configuration=edited, now=NOW) == (
            RequestStatus.APPROVED
        )
