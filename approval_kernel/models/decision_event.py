"""
Module: approval_kernel.models.decision_event
Responsibility: ORM persistence for the append-only decision chain.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Append-only: UPDATE and DELETE through the ORM raise
      ImmutabilityViolationError.
    - Per-request ordering: UNIQUE(request_id, seq) makes two writers that
      allocated the same seq collide instead of forking the chain.

Failure modes:
    - IntegrityError on duplicate (request_id, seq).
    - ImmutabilityViolationError on UPDATE or DELETE.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import DecisionAction, DecisionEvent
from approval_kernel.exceptions import ImmutabilityViolationError


class DecisionEventModel(Base):
    """One link of a request's decision chain."""

    __tablename__ = "approval_decision_events"

    __table_args__ = (
        UniqueConstraint("request_id", "seq", name="uq_approval_decision_events_seq"),
        CheckConstraint("seq >= 1", name="ck_approval_decision_events_seq"),
        CheckConstraint(
            "action IN ('approve', 'reject', 'delegate', 'escalate', "
            "'request_info', 'expire', 'cancel')",
            name="ck_approval_decision_events_action",
        ),
        Index("ix_approval_decision_events_approver", "approver_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.id"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    approver_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    acting_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    delegated_to_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    escalation_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    prev_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    integrity_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<DecisionEvent {self.request_id}#{self.seq} {self.action}>"

    def to_dto(self) -> DecisionEvent:
        return DecisionEvent(
            id=self.id,
            request_id=self.request_id,
            seq=self.seq,
            action=DecisionAction(self.action),
            approver_id=self.approver_id,
            acting_user_id=self.acting_user_id,
            justification=self.justification,
            delegated_to_user_id=self.delegated_to_user_id,
            escalation_level=self.escalation_level,
            is_automatic=self.is_automatic,
            created_at=self.created_at,
            prev_hash=self.prev_hash,
            integrity_hash=self.integrity_hash,
        )

    @classmethod
    def from_dto(cls, dto: DecisionEvent) -> DecisionEventModel:
        return cls(
            id=dto.id,
            request_id=dto.request_id,
            seq=dto.seq,
            action=dto.action.value,
            approver_id=dto.approver_id,
            acting_user_id=dto.acting_user_id,
            justification=dto.justification,
            delegated_to_user_id=dto.delegated_to_user_id,
            escalation_level=dto.escalation_level,
            is_automatic=dto.is_automatic,
            created_at=dto.created_at,
            prev_hash=dto.prev_hash,
            integrity_hash=dto.integrity_hash,
        )


@event.listens_for(DecisionEventModel, "before_update")
def _prevent_event_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="DecisionEvent",
        entity_id=str(target.id),
        reason="Decision events are append-only",
    )


@event.listens_for(DecisionEventModel, "before_delete")
def _prevent_event_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="DecisionEvent",
        entity_id=str(target.id),
        reason="Decision events are append-only",
    )
