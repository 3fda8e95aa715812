"""
Module: approval_kernel.models.delegation
Responsibility: ORM persistence for delegations of approval duty.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Non-empty validity window: valid_until > valid_from.
    - Single scope: request_id and configuration_id are never both set.
    - Retained for audit: DELETE is refused; revocation only flips ``active``
      and stamps revoked_at / revoked_by.

Failure modes:
    - ImmutabilityViolationError on DELETE or on changing anything other
      than the revocation fields.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import Delegation
from approval_kernel.exceptions import ImmutabilityViolationError

_REVOCATION_FIELDS = frozenset({"active", "revoked_at", "revoked_by"})


class DelegationModel(Base):
    """Persistent delegation record."""

    __tablename__ = "approval_delegations"

    __table_args__ = (
        CheckConstraint("valid_until > valid_from", name="ck_approval_delegations_window"),
        CheckConstraint(
            "request_id IS NULL OR configuration_id IS NULL",
            name="ck_approval_delegations_single_scope",
        ),
        CheckConstraint("from_user_id <> to_user_id", name="ck_approval_delegations_self"),
        Index("ix_approval_delegations_from_user", "from_user_id", "active"),
        Index("ix_approval_delegations_to_user", "to_user_id", "active"),
    )

    from_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    to_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approval_requests.id"), nullable=True,
    )
    configuration_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approval_configurations.id"), nullable=True,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Delegation {self.from_user_id}->{self.to_user_id} "
            f"[{self.valid_from}, {self.valid_until}) active={self.active}>"
        )

    def to_dto(self) -> Delegation:
        return Delegation(
            id=self.id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            reason=self.reason,
            request_id=self.request_id,
            configuration_id=self.configuration_id,
            active=self.active,
            created_at=self.created_at,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto: Delegation) -> DelegationModel:
        return cls(
            id=dto.id,
            from_user_id=dto.from_user_id,
            to_user_id=dto.to_user_id,
            valid_from=dto.valid_from,
            valid_until=dto.valid_until,
            reason=dto.reason,
            request_id=dto.request_id,
            configuration_id=dto.configuration_id,
            active=dto.active,
            created_at=dto.created_at,
            created_by=dto.created_by,
        )


@event.listens_for(DelegationModel, "before_update")
def _guard_delegation_update(mapper, connection, target):
    state = inspect(target)
    for attr in state.attrs:
        if attr.key in _REVOCATION_FIELDS or attr.key == "id":
            continue
        if attr.history.has_changes():
            raise ImmutabilityViolationError(
                entity_type="Delegation",
                entity_id=str(target.id),
                reason=f"Field '{attr.key}' cannot change; revoke and re-delegate",
            )


@event.listens_for(DelegationModel, "before_delete")
def _prevent_delegation_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Delegation",
        entity_id=str(target.id),
        reason="Delegations are revoked, never deleted",
    )
