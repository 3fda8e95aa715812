"""SQLAlchemy ConfigurationRepository."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    Approver,
    ConfigurationStatus,
)
from approval_kernel.exceptions import ConfigurationNotFoundError
from approval_kernel.models.configuration import (
    ApprovalConfigurationModel,
    ApproverModel,
)


class SqlConfigurationRepository:
    """Configurations and approver bindings stored through the ORM."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, configuration: ApprovalConfiguration) -> ApprovalConfiguration:
        model = ApprovalConfigurationModel.from_dto(configuration)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get(self, configuration_id: UUID) -> ApprovalConfiguration | None:
        model = self._session.get(ApprovalConfigurationModel, configuration_id)
        return model.to_dto() if model is not None else None

    def list_for_action(
        self,
        action_type: str,
        status: ConfigurationStatus | None = None,
    ) -> list[ApprovalConfiguration]:
        stmt = select(ApprovalConfigurationModel).where(
            ApprovalConfigurationModel.action_type == action_type,
        )
        if status is not None:
            stmt = stmt.where(ApprovalConfigurationModel.status == status.value)
        stmt = stmt.order_by(ApprovalConfigurationModel.created_at)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_all(self) -> list[ApprovalConfiguration]:
        stmt = select(ApprovalConfigurationModel).order_by(
            ApprovalConfigurationModel.action_type,
            ApprovalConfigurationModel.created_at,
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def set_status(
        self,
        configuration_id: UUID,
        status: ConfigurationStatus,
    ) -> ApprovalConfiguration:
        model = self._session.get(ApprovalConfigurationModel, configuration_id)
        if model is None:
            raise ConfigurationNotFoundError(configuration_id)
        model.status = status.value
        self._session.flush()
        return model.to_dto()

    def add_approver(self, approver: Approver) -> Approver:
        model = ApproverModel.from_dto(approver)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def list_approvers(
        self,
        configuration_id: UUID,
        active_only: bool = True,
    ) -> list[Approver]:
        stmt = select(ApproverModel).where(
            ApproverModel.configuration_id == configuration_id,
        )
        if active_only:
            stmt = stmt.where(ApproverModel.active == True)  # noqa: E712
        approvers = [m.to_dto() for m in self._session.execute(stmt).scalars()]
        # Ordered approvers first (by order), then unordered, then by user id
        return sorted(
            approvers,
            key=lambda a: (a.order is None, a.order or 0, a.user_id),
        )

    def set_approver_active(
        self,
        configuration_id: UUID,
        user_id: str,
        active: bool,
    ) -> Approver:
        model = self._session.execute(
            select(ApproverModel).where(
                ApproverModel.configuration_id == configuration_id,
                ApproverModel.user_id == user_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise ConfigurationNotFoundError(configuration_id)
        model.active = active
        self._session.flush()
        return model.to_dto()
