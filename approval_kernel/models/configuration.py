"""
Module: approval_kernel.models.configuration
Responsibility: ORM persistence for approval configurations and their
    approver bindings.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Configurations and approvers are never physically deleted; they are
      soft-deactivated through ``status`` / ``active``.
    - CHECK constraints mirror the structural validation rules (positive
      time limit, min_approvals >= 1, ordered value range).
    - One binding per (configuration, user).

Failure modes:
    - ImmutabilityViolationError on DELETE.
    - IntegrityError on duplicate approver binding.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalStrategy,
    Approver,
    BusinessHours,
    ConfigurationStatus,
)
from approval_kernel.exceptions import ImmutabilityViolationError


class ApprovalConfigurationModel(Base):
    """Persistent approval configuration (one rule for one action type)."""

    __tablename__ = "approval_configurations"

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive')",
            name="ck_approval_configurations_status",
        ),
        CheckConstraint(
            "strategy IN ('unanimous', 'majority', 'quorum_n', 'single')",
            name="ck_approval_configurations_strategy",
        ),
        CheckConstraint(
            "min_approvals >= 1", name="ck_approval_configurations_min_approvals",
        ),
        CheckConstraint(
            "time_limit_hours > 0", name="ck_approval_configurations_time_limit",
        ),
        CheckConstraint(
            "min_value IS NULL OR max_value IS NULL OR min_value <= max_value",
            name="ck_approval_configurations_value_range",
        ),
        Index(
            "ix_approval_configurations_lookup",
            "action_type", "status",
        ),
    )

    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    strategy: Mapped[str] = mapped_column(String(20), nullable=False)
    min_approvals: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_approvals: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    requester_profile: Mapped[str | None] = mapped_column(String(100), nullable=True)
    org_unit: Mapped[str | None] = mapped_column(String(100), nullable=True)
    min_value: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    max_value: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    time_limit_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    reminder_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escalation_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    expiry_warning_hours: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    escalation_recipients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    allow_parallel_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_self_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_justification_on_approve: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    require_justification_on_reject: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    # Business-hours window; all NULL when not configured
    business_weekdays: Mapped[list | None] = mapped_column(JSON, nullable=True)
    business_start: Mapped[str | None] = mapped_column(String(8), nullable=True)
    business_end: Mapped[str | None] = mapped_column(String(8), nullable=True)
    business_timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    holidays: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    priority_rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_from: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ApprovalConfiguration {self.id} {self.action_type} "
            f"{self.strategy} status={self.status}>"
        )

    def to_dto(self) -> ApprovalConfiguration:
        """Convert ORM model to frozen domain DTO."""
        business_hours = None
        if self.business_weekdays is not None:
            business_hours = BusinessHours(
                weekdays=frozenset(int(d) for d in self.business_weekdays),
                start=time.fromisoformat(self.business_start),
                end=time.fromisoformat(self.business_end),
                timezone=self.business_timezone or "UTC",
            )

        return ApprovalConfiguration(
            id=self.id,
            action_type=self.action_type,
            name=self.name,
            description=self.description,
            strategy=ApprovalStrategy(self.strategy),
            min_approvals=self.min_approvals,
            max_approvals=self.max_approvals,
            status=ConfigurationStatus(self.status),
            requester_profile=self.requester_profile,
            org_unit=self.org_unit,
            min_value=self.min_value,
            max_value=self.max_value,
            time_limit_hours=self.time_limit_hours,
            reminder_hours=self.reminder_hours,
            escalation_hours=self.escalation_hours,
            max_escalation_level=self.max_escalation_level,
            expiry_warning_hours=tuple(self.expiry_warning_hours or ()),
            escalation_recipients=tuple(self.escalation_recipients or ()),
            allow_parallel_approval=self.allow_parallel_approval,
            allow_self_approval=self.allow_self_approval,
            require_justification_on_approve=self.require_justification_on_approve,
            require_justification_on_reject=self.require_justification_on_reject,
            business_hours=business_hours,
            holidays=frozenset(date.fromisoformat(d) for d in self.holidays or ()),
            priority_rank=self.priority_rank,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            created_at=self.created_at,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalConfiguration) -> ApprovalConfigurationModel:
        """Create ORM model from domain DTO."""
        hours = dto.business_hours
        return cls(
            id=dto.id,
            action_type=dto.action_type,
            name=dto.name,
            description=dto.description,
            strategy=dto.strategy.value,
            min_approvals=dto.min_approvals,
            max_approvals=dto.max_approvals,
            status=dto.status.value,
            requester_profile=dto.requester_profile,
            org_unit=dto.org_unit,
            min_value=dto.min_value,
            max_value=dto.max_value,
            time_limit_hours=dto.time_limit_hours,
            reminder_hours=dto.reminder_hours,
            escalation_hours=dto.escalation_hours,
            max_escalation_level=dto.max_escalation_level,
            expiry_warning_hours=list(dto.expiry_warning_hours),
            escalation_recipients=list(dto.escalation_recipients),
            allow_parallel_approval=dto.allow_parallel_approval,
            allow_self_approval=dto.allow_self_approval,
            require_justification_on_approve=dto.require_justification_on_approve,
            require_justification_on_reject=dto.require_justification_on_reject,
            business_weekdays=sorted(hours.weekdays) if hours else None,
            business_start=hours.start.isoformat() if hours else None,
            business_end=hours.end.isoformat() if hours else None,
            business_timezone=hours.timezone if hours else None,
            holidays=sorted(d.isoformat() for d in dto.holidays),
            priority_rank=dto.priority_rank,
            valid_from=dto.valid_from,
            valid_until=dto.valid_until,
            created_at=dto.created_at,
            created_by=dto.created_by,
        )


class ApproverModel(Base):
    """Binding of a user to a configuration."""

    __tablename__ = "approval_approvers"

    __table_args__ = (
        UniqueConstraint(
            "configuration_id", "user_id", name="uq_approval_approvers_user",
        ),
        CheckConstraint("weight >= 1", name="ck_approval_approvers_weight"),
        CheckConstraint(
            "min_value IS NULL OR max_value IS NULL OR min_value <= max_value",
            name="ck_approval_approvers_value_range",
        ),
        Index("ix_approval_approvers_configuration", "configuration_id", "active"),
    )

    configuration_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_configurations.id"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    order: Mapped[int | None] = mapped_column("approval_order", Integer, nullable=True)
    min_value: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    max_value: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    def __repr__(self) -> str:
        return f"<Approver {self.user_id} config={self.configuration_id} active={self.active}>"

    def to_dto(self) -> Approver:
        return Approver(
            id=self.id,
            user_id=self.user_id,
            configuration_id=self.configuration_id,
            active=self.active,
            weight=self.weight,
            order=self.order,
            min_value=self.min_value,
            max_value=self.max_value,
        )

    @classmethod
    def from_dto(cls, dto: Approver) -> ApproverModel:
        return cls(
            id=dto.id,
            user_id=dto.user_id,
            configuration_id=dto.configuration_id,
            active=dto.active,
            weight=dto.weight,
            order=dto.order,
            min_value=dto.min_value,
            max_value=dto.max_value,
        )


@event.listens_for(ApprovalConfigurationModel, "before_delete")
def _prevent_configuration_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalConfiguration",
        entity_id=str(target.id),
        reason="Configurations are deactivated, never deleted",
    )


@event.listens_for(ApproverModel, "before_delete")
def _prevent_approver_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Approver",
        entity_id=str(target.id),
        reason="Approver bindings are deactivated, never deleted",
    )
