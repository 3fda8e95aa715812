"""
Module: approval_kernel.models.request
Responsibility: ORM persistence for approval requests.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Optimistic concurrency: ``version`` is the mapper's version_id_col, so
      every UPDATE carries ``WHERE version = <loaded>``; a lost race raises
      StaleDataError at flush.
    - Snapshot immutability: configuration_id, code, anchor_hash, requester
      fields, eligible_approvers, required_approvals, created_at and
      expires_at are write-once.
    - Terminal states are final: a row whose status is terminal cannot change
      status again.
    - Requests are never physically deleted.

Failure modes:
    - ImmutabilityViolationError on write-once field change, terminal status
      change or DELETE.
    - IntegrityError on duplicate ``code``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import (
    TERMINAL_REQUEST_STATUSES,
    ApprovalRequest,
    RequestStatus,
)
from approval_kernel.exceptions import ImmutabilityViolationError

_WRITE_ONCE_FIELDS = (
    "code",
    "configuration_id",
    "action_type",
    "required_approvals",
    "eligible_approvers",
    "requester_id",
    "requester_profile",
    "requester_org_unit",
    "value",
    "payload",
    "created_at",
    "expires_at",
    "anchor_hash",
)

_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_REQUEST_STATUSES)


class ApprovalRequestModel(Base):
    """Persistent approval request."""

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'expired', 'cancelled')",
            name="ck_approval_requests_status",
        ),
        CheckConstraint(
            "approvals_received >= 0 AND rejections_received >= 0",
            name="ck_approval_requests_tallies",
        ),
        # Timer sweep: PENDING requests by deadline
        Index("ix_approval_requests_status_expiry", "status", "expires_at"),
        Index("ix_approval_requests_requester", "requester_id", "created_at"),
        Index("ix_approval_requests_configuration", "configuration_id"),
    )

    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    configuration_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_configurations.id"),
        nullable=False,
    )
    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    required_approvals: Mapped[int] = mapped_column(Integer, nullable=False)
    eligible_approvers: Mapped[list] = mapped_column(JSON, nullable=False)
    decided_approvers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    approvals_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejections_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_profile: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requester_org_unit: Mapped[str | None] = mapped_column(String(100), nullable=True)
    value: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    first_approval_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_reminder_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_escalation_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    escalation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reminder_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expiry_warnings_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    anchor_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.code} status={self.status} v{self.version}>"

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalRequest(
            id=self.id,
            code=self.code,
            configuration_id=self.configuration_id,
            action_type=self.action_type,
            status=RequestStatus(self.status),
            required_approvals=self.required_approvals,
            eligible_approvers=tuple(self.eligible_approvers),
            decided_approvers=tuple(self.decided_approvers or ()),
            approvals_received=self.approvals_received,
            rejections_received=self.rejections_received,
            requester_id=self.requester_id,
            requester_profile=self.requester_profile,
            requester_org_unit=self.requester_org_unit,
            value=self.value,
            payload=dict(self.payload or {}),
            created_at=self.created_at,
            expires_at=self.expires_at,
            first_approval_at=self.first_approval_at,
            resolved_at=self.resolved_at,
            last_reminder_at=self.last_reminder_at,
            last_escalation_at=self.last_escalation_at,
            escalation_count=self.escalation_count,
            reminder_count=self.reminder_count,
            expiry_warnings_sent=self.expiry_warnings_sent,
            anchor_hash=self.anchor_hash,
            updated_at=self.updated_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRequest) -> ApprovalRequestModel:
        """Create ORM model from domain DTO. ``version`` starts at 1."""
        model = cls(id=dto.id, version=1)
        model.apply_dto(dto, include_write_once=True)
        return model

    def apply_dto(self, dto: ApprovalRequest, include_write_once: bool = False) -> None:
        """Copy mutable (and optionally write-once) fields from ``dto``."""
        if include_write_once:
            self.code = dto.code
            self.configuration_id = dto.configuration_id
            self.action_type = dto.action_type
            self.required_approvals = dto.required_approvals
            self.eligible_approvers = list(dto.eligible_approvers)
            self.requester_id = dto.requester_id
            self.requester_profile = dto.requester_profile
            self.requester_org_unit = dto.requester_org_unit
            self.value = dto.value
            self.payload = dict(dto.payload)
            self.created_at = dto.created_at
            self.expires_at = dto.expires_at
            self.anchor_hash = dto.anchor_hash
        self.status = dto.status.value
        self.decided_approvers = list(dto.decided_approvers)
        self.approvals_received = dto.approvals_received
        self.rejections_received = dto.rejections_received
        self.first_approval_at = dto.first_approval_at
        self.resolved_at = dto.resolved_at
        self.last_reminder_at = dto.last_reminder_at
        self.last_escalation_at = dto.last_escalation_at
        self.escalation_count = dto.escalation_count
        self.reminder_count = dto.reminder_count
        self.expiry_warnings_sent = dto.expiry_warnings_sent
        self.updated_at = dto.updated_at or dto.created_at


@event.listens_for(ApprovalRequestModel, "before_update")
def _guard_request_update(mapper, connection, target):
    state = inspect(target)
    for name in _WRITE_ONCE_FIELDS:
        if state.attrs[name].history.has_changes():
            raise ImmutabilityViolationError(
                entity_type="ApprovalRequest",
                entity_id=str(target.id),
                reason=f"Field '{name}' is write-once",
            )

    status_history = state.attrs["status"].history
    if status_history.has_changes():
        previous = status_history.deleted[0] if status_history.deleted else None
        if previous in _TERMINAL_VALUES:
            raise ImmutabilityViolationError(
                entity_type="ApprovalRequest",
                entity_id=str(target.id),
                reason=f"Status is terminal ({previous})",
            )


@event.listens_for(ApprovalRequestModel, "before_delete")
def _prevent_request_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalRequest",
        entity_id=str(target.id),
        reason="Approval requests are never deleted",
    )
