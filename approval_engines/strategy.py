"""
Module: approval_engines.strategy
Responsibility:
    Decide whether a request is APPROVED, REJECTED, EXPIRED or still
    PENDING from its tally and its configuration's strategy.

Architecture position:
    Engines -- pure functions over request/configuration snapshots.

Invariants enforced:
    - Early rejection: as soon as approval is mathematically impossible
      given the undecided approvers, the result is REJECTED.
    - Expiry is a hard boundary: a PENDING request at or past
      ``expires_at`` evaluates to EXPIRED regardless of tally.
    - Terminal statuses are returned unchanged.

Tally rules (total = len(eligible_approvers)):
    UNANIMOUS  approved iff approvals == total; rejected on first rejection
    MAJORITY   approved iff 2 * approvals > total;
               rejected iff 2 * (approvals + undecided) <= total
    QUORUM_N   approved iff approvals >= required;
               rejected iff approvals + undecided < required
    SINGLE     first terminal decision wins
"""

from __future__ import annotations

from datetime import datetime

from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalRequest,
    ApprovalStrategy,
    RequestStatus,
)


def required_approvals(
    strategy: ApprovalStrategy,
    min_approvals: int,
    total_approvers: int,
) -> int:
    """Approvals needed for APPROVED, frozen onto the request at submit."""
    if strategy == ApprovalStrategy.SINGLE:
        return 1
    if strategy == ApprovalStrategy.QUORUM_N:
        return min_approvals
    if strategy == ApprovalStrategy.MAJORITY:
        return total_approvers // 2 + 1
    return total_approvers


def minimum_approvers(strategy: ApprovalStrategy, min_approvals: int) -> int:
    """Smallest eligible-approver count with which a request can resolve."""
    if strategy == ApprovalStrategy.SINGLE:
        return 1
    return max(1, min_approvals)


def evaluate_tally(
    strategy: ApprovalStrategy,
    approvals: int,
    rejections: int,
    total: int,
    required: int,
) -> RequestStatus:
    undecided = max(0, total - approvals - rejections)

    if strategy == ApprovalStrategy.UNANIMOUS:
        if rejections >= 1:
            return RequestStatus.REJECTED
        if approvals >= total:
            return RequestStatus.APPROVED
        return RequestStatus.PENDING

    if strategy == ApprovalStrategy.MAJORITY:
        if 2 * approvals > total:
            return RequestStatus.APPROVED
        if 2 * (approvals + undecided) <= total:
            return RequestStatus.REJECTED
        return RequestStatus.PENDING

    if strategy == ApprovalStrategy.QUORUM_N:
        if approvals >= required:
            return RequestStatus.APPROVED
        if approvals + undecided < required:
            return RequestStatus.REJECTED
        return RequestStatus.PENDING

    # SINGLE
    if approvals >= 1:
        return RequestStatus.APPROVED
    if rejections >= 1:
        return RequestStatus.REJECTED
    return RequestStatus.PENDING


@traced_engine("strategy", "1.0", fingerprint_fields=("request", "now"))
def evaluate_request(
    *,
    request: ApprovalRequest,
    configuration: ApprovalConfiguration,
    now: datetime | None = None,
) -> RequestStatus:
    """New status of ``request`` under ``configuration``.

    ``now`` enables the expiry check; without it only the tally is used.
    """
    if request.is_terminal:
        return request.status
    if now is not None and now >= request.expires_at:
        return RequestStatus.EXPIRED
    return evaluate_tally(
        configuration.strategy,
        approvals=request.approvals_received,
        rejections=request.rejections_received,
        total=len(request.eligible_approvers),
        required=request.required_approvals,
    )
