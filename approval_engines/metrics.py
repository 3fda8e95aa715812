"""
Module: approval_engines.metrics
Responsibility:
    Aggregate statistics over a set of approval requests: volume per status
    and per action type, approval and rejection rates, time-to-approval
    distribution, deadline compliance, escalation counts and per-approver
    decision counts.

Architecture position:
    Engines -- pure function over request and event snapshots.

Invariants:
    - Durations are measured from ``created_at`` to ``resolved_at``.
    - A resolved request met its deadline when ``resolved_at <= expires_at``.
    - Percentages are rounded half-up to two places; an empty population
      yields zero rates and ``None`` durations.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from approval_kernel.domain.approval import (
    ApprovalRequest,
    DecisionAction,
    DecisionEvent,
    RequestStatus,
)

_CENT = Decimal("0.01")
_HOUR = Decimal(3600)
_RESOLVED = (RequestStatus.APPROVED, RequestStatus.REJECTED)


@dataclass(frozen=True)
class ActionTypeStatistics:
    total: int
    approved: int = 0
    rejected: int = 0
    approval_rate: Decimal = Decimal("0")


@dataclass(frozen=True)
class ApproverStatistics:
    approvals: int = 0
    rejections: int = 0

    @property
    def decisions(self) -> int:
        return self.approvals + self.rejections


@dataclass(frozen=True)
class ApprovalStatistics:
    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    approval_rate: Decimal = Decimal("0")
    rejection_rate: Decimal = Decimal("0")
    average_approval_hours: Decimal | None = None
    median_approval_hours: Decimal | None = None
    min_approval_hours: Decimal | None = None
    max_approval_hours: Decimal | None = None
    p95_approval_hours: Decimal | None = None
    escalated: int = 0
    within_deadline: int = 0
    past_deadline: int = 0
    sla_compliance_rate: Decimal = Decimal("0")
    by_action_type: dict[str, ActionTypeStatistics] = field(default_factory=dict)
    by_approver: dict[str, ApproverStatistics] = field(default_factory=dict)


def _percent(part: int, whole: int) -> Decimal:
    if whole == 0:
        return Decimal("0")
    return (Decimal(part) * 100 / Decimal(whole)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _hours(duration: timedelta) -> Decimal:
    return (Decimal(duration.total_seconds()) / _HOUR).quantize(_CENT, rounding=ROUND_HALF_UP)


def _median(ordered: list[timedelta]) -> timedelta:
    middle = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / 2


def _p95(ordered: list[timedelta]) -> timedelta:
    # nearest-rank on the sorted sample, clamped to the last element
    return ordered[min(len(ordered) * 95 // 100, len(ordered) - 1)]


def _by_action_type(requests: list[ApprovalRequest]) -> dict[str, ActionTypeStatistics]:
    counts: dict[str, list[int]] = {}
    for request in requests:
        row = counts.setdefault(request.action_type, [0, 0, 0])
        row[0] += 1
        if request.status == RequestStatus.APPROVED:
            row[1] += 1
        elif request.status == RequestStatus.REJECTED:
            row[2] += 1
    return {
        action_type: ActionTypeStatistics(
            total=total,
            approved=approved,
            rejected=rejected,
            approval_rate=_percent(approved, total),
        )
        for action_type, (total, approved, rejected) in sorted(counts.items())
    }


def _by_approver(
    events: Iterable[DecisionEvent], request_ids: set,
) -> dict[str, ApproverStatistics]:
    """Count approve/reject decisions per duty holder.

    Decisions are attributed to ``approver_id`` (the approver whose duty
    was exercised), so a delegate's vote counts for the delegator.
    """
    counts: dict[str, tuple[int, int]] = {}
    for event in events:
        if event.request_id not in request_ids or event.approver_id is None:
            continue
        approvals, rejections = counts.get(event.approver_id, (0, 0))
        if event.action == DecisionAction.APPROVE:
            counts[event.approver_id] = (approvals + 1, rejections)
        elif event.action == DecisionAction.REJECT:
            counts[event.approver_id] = (approvals, rejections + 1)
    return {
        approver: ApproverStatistics(approvals=approvals, rejections=rejections)
        for approver, (approvals, rejections) in sorted(counts.items())
    }


def compute_statistics(
    requests: Iterable[ApprovalRequest],
    events: Iterable[DecisionEvent] = (),
) -> ApprovalStatistics:
    """Rates are percentages of all requests, rounded to two places.

    The duration figures cover approved requests only.  Deadline
    compliance covers approved and rejected requests.  ``events`` feeds
    the per-approver counts; events of requests outside ``requests`` are
    ignored.
    """
    requests = list(requests)
    by_status = {status.value: 0 for status in RequestStatus}
    approval_durations: list[timedelta] = []
    escalated = 0
    within = past = 0

    for request in requests:
        by_status[request.status.value] += 1
        if request.escalation_count > 0:
            escalated += 1
        if request.resolved_at is None or request.status not in _RESOLVED:
            continue
        if request.resolved_at <= request.expires_at:
            within += 1
        else:
            past += 1
        if request.status == RequestStatus.APPROVED:
            approval_durations.append(request.resolved_at - request.created_at)

    durations: dict[str, Decimal | None] = {
        "average_approval_hours": None,
        "median_approval_hours": None,
        "min_approval_hours": None,
        "max_approval_hours": None,
        "p95_approval_hours": None,
    }
    if approval_durations:
        ordered = sorted(approval_durations)
        durations = {
            "average_approval_hours": _hours(sum(ordered, timedelta(0)) / len(ordered)),
            "median_approval_hours": _hours(_median(ordered)),
            "min_approval_hours": _hours(ordered[0]),
            "max_approval_hours": _hours(ordered[-1]),
            "p95_approval_hours": _hours(_p95(ordered)),
        }

    total = len(requests)
    return ApprovalStatistics(
        total=total,
        by_status=by_status,
        approval_rate=_percent(by_status[RequestStatus.APPROVED.value], total),
        rejection_rate=_percent(by_status[RequestStatus.REJECTED.value], total),
        escalated=escalated,
        within_deadline=within,
        past_deadline=past,
        sla_compliance_rate=_percent(within, within + past),
        by_action_type=_by_action_type(requests),
        by_approver=_by_approver(events, {r.id for r in requests}),
        **durations,
    )
