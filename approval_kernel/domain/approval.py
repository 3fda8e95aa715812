"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval-workflow engine.  Defines the request
lifecycle state machine, configuration/approver rule data, request and
decision-event records, delegations and notification instructions.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Lifecycle state machine -- ``REQUEST_TRANSITIONS`` defines the only valid
  status transitions.  Terminal states have no outgoing edges.
* Configuration snapshot -- ``ApprovalRequest`` captures
  ``required_approvals`` and ``eligible_approvers`` at creation time, so
  configuration edits never alter in-flight requests.
* Tamper evidence -- ``ApprovalRequest.anchor_hash`` covers the immutable
  request fields and roots the decision-event hash chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4


# =========================================================================
# Enumerations
# =========================================================================


class ApprovalStrategy(str, Enum):
    """Rule determining when a request resolves."""

    UNANIMOUS = "unanimous"
    MAJORITY = "majority"
    QUORUM_N = "quorum_n"
    SINGLE = "single"


class ConfigurationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class RequestStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.PENDING,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.EXPIRED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.EXPIRED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.EXPIRED,
    RequestStatus.CANCELLED,
})


def can_transition(from_status: RequestStatus, to_status: RequestStatus) -> bool:
    """True when ``from_status -> to_status`` is an edge of the state machine."""
    return to_status in REQUEST_TRANSITIONS[from_status]


class DecisionAction(str, Enum):
    """Actions recorded on the decision chain.

    EXPIRE and CANCEL are system/requester actions; the rest are submitted
    by approvers through ``decide``.
    """

    APPROVE = "approve"
    REJECT = "reject"
    DELEGATE = "delegate"
    ESCALATE = "escalate"
    REQUEST_INFO = "request_info"
    EXPIRE = "expire"
    CANCEL = "cancel"


TERMINAL_DECISIONS: frozenset[DecisionAction] = frozenset({
    DecisionAction.APPROVE,
    DecisionAction.REJECT,
})

APPROVER_ACTIONS: frozenset[DecisionAction] = frozenset({
    DecisionAction.APPROVE,
    DecisionAction.REJECT,
    DecisionAction.DELEGATE,
    DecisionAction.ESCALATE,
    DecisionAction.REQUEST_INFO,
})


class DelegationScope(str, Enum):
    """Delegation scope, ordered from most to least specific."""

    REQUEST = "request"
    CONFIGURATION = "configuration"
    GLOBAL = "global"


class NotificationKind(str, Enum):
    SUBMITTED = "submitted"
    REMINDER = "reminder"
    ESCALATION = "escalation"
    EXPIRY_WARNING = "expiry_warning"
    INFO_REQUESTED = "info_requested"
    RESOLVED = "resolved"


# =========================================================================
# Configuration Types
# =========================================================================


@dataclass(frozen=True)
class BusinessHours:
    """Weekly working window evaluated in ``timezone``.

    ``weekdays`` uses ``date.weekday()`` numbering (Monday = 0).
    """

    weekdays: frozenset[int]
    start: time
    end: time
    timezone: str = "UTC"


@dataclass(frozen=True)
class ApprovalConfiguration:
    """A rule bound to one critical-action type."""

    action_type: str
    strategy: ApprovalStrategy
    time_limit_hours: int
    id: UUID = field(default_factory=uuid4)
    name: str = ""
    description: str | None = None
    min_approvals: int = 1
    max_approvals: int | None = None  # informational ceiling, never read by the tally
    status: ConfigurationStatus = ConfigurationStatus.ACTIVE
    requester_profile: str | None = None
    org_unit: str | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    reminder_hours: int | None = None
    escalation_hours: int | None = None
    max_escalation_level: int = 3
    expiry_warning_hours: tuple[int, ...] = ()
    escalation_recipients: tuple[str, ...] = ()
    allow_parallel_approval: bool = True
    allow_self_approval: bool = False
    require_justification_on_approve: bool = False
    require_justification_on_reject: bool = False
    business_hours: BusinessHours | None = None
    holidays: frozenset[date] = frozenset()
    priority_rank: int = 0
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    created_at: datetime | None = None
    created_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ConfigurationStatus.ACTIVE


@dataclass(frozen=True)
class Approver:
    """Binding of a user to a configuration.

    ``min_value``/``max_value`` limit the request values this approver may
    decide; a bound excludes requests that carry no value.
    """

    user_id: str
    configuration_id: UUID
    id: UUID = field(default_factory=uuid4)
    active: bool = True
    weight: int = 1
    order: int | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None


# =========================================================================
# Request and Decision Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalRequest:
    """One instance of "this specific action needs approval".

    ``eligible_approvers`` and ``required_approvals`` are snapshots taken at
    submission.  ``decided_approvers`` lists approvers with a terminal
    decision, in decision order.
    """

    id: UUID
    code: str
    configuration_id: UUID
    action_type: str
    status: RequestStatus
    required_approvals: int
    eligible_approvers: tuple[str, ...]
    requester_id: str
    created_at: datetime
    expires_at: datetime
    requester_profile: str | None = None
    requester_org_unit: str | None = None
    value: Decimal | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    decided_approvers: tuple[str, ...] = ()
    approvals_received: int = 0
    rejections_received: int = 0
    first_approval_at: datetime | None = None
    resolved_at: datetime | None = None
    last_reminder_at: datetime | None = None
    last_escalation_at: datetime | None = None
    escalation_count: int = 0
    reminder_count: int = 0
    expiry_warnings_sent: int = 0
    anchor_hash: str = ""
    updated_at: datetime | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def undecided_approvers(self) -> tuple[str, ...]:
        decided = set(self.decided_approvers)
        return tuple(a for a in self.eligible_approvers if a not in decided)


@dataclass(frozen=True)
class DecisionEvent:
    """Append-only audit entry on a request's decision chain."""

    request_id: UUID
    action: DecisionAction
    created_at: datetime
    acting_user_id: str | None = None
    approver_id: str | None = None
    justification: str | None = None
    delegated_to_user_id: str | None = None
    escalation_level: int | None = None
    is_automatic: bool = False
    id: UUID = field(default_factory=uuid4)
    seq: int | None = None
    prev_hash: str | None = None
    integrity_hash: str | None = None


@dataclass(frozen=True)
class Delegation:
    """Time-bounded reassignment of approval duty.

    At most one of ``request_id`` / ``configuration_id`` is set; neither
    means the delegation applies globally.  Valid on ``[valid_from,
    valid_until)``.
    """

    from_user_id: str
    to_user_id: str
    valid_from: datetime
    valid_until: datetime
    id: UUID = field(default_factory=uuid4)
    reason: str | None = None
    request_id: UUID | None = None
    configuration_id: UUID | None = None
    active: bool = True
    created_at: datetime | None = None
    created_by: str | None = None

    @property
    def scope(self) -> DelegationScope:
        if self.request_id is not None:
            return DelegationScope.REQUEST
        if self.configuration_id is not None:
            return DelegationScope.CONFIGURATION
        return DelegationScope.GLOBAL

    def covers(self, at: datetime) -> bool:
        return self.active and self.valid_from <= at < self.valid_until

    def applies_to(
        self,
        request_id: UUID | None,
        configuration_id: UUID | None,
    ) -> bool:
        """True when the scope includes the given request context.

        Without a request context only global delegations apply.
        """
        if self.request_id is not None:
            return self.request_id == request_id
        if self.configuration_id is not None:
            return self.configuration_id == configuration_id
        return True


# =========================================================================
# Side-effect instructions and reports
# =========================================================================


@dataclass(frozen=True)
class Notification:
    """Instruction for the notification sink. Carries no transport details."""

    request_id: UUID
    request_code: str
    kind: NotificationKind
    recipients: tuple[str, ...]
    channel_hints: tuple[str, ...] = ()
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TickReport:
    """Outcome of one timer sweep."""

    now: datetime
    scanned: int = 0
    expired: int = 0
    escalated: int = 0
    reminded: int = 0
    warned: int = 0
    failed: int = 0
    interrupted: bool = False


@dataclass(frozen=True)
class AuditExport:
    """Read-only compliance export of one request's decision chain."""

    request: ApprovalRequest
    events: tuple[DecisionEvent, ...]
    chain_valid: bool
    broken_at_seq: int | None = None


# =========================================================================
# External user directory
# =========================================================================


class UserDirectory(Protocol):
    """Read-only view of the external identity service."""

    def is_active(self, user_id: str) -> bool: ...

    def is_admin(self, user_id: str) -> bool: ...


@dataclass(frozen=True)
class StaticUserDirectory:
    """UserDirectory backed by fixed sets (settings, tests).

    Every user not listed in ``inactive_user_ids`` is active.
    """

    admin_user_ids: frozenset[str] = frozenset()
    inactive_user_ids: frozenset[str] = frozenset()

    def is_active(self, user_id: str) -> bool:
        return user_id not in self.inactive_user_ids

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admin_user_ids
