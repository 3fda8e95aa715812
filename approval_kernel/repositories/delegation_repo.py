"""SQLAlchemy DelegationRepository."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import Delegation
from approval_kernel.exceptions import DelegationNotFoundError
from approval_kernel.models.delegation import DelegationModel


class SqlDelegationRepository:
    def __init__(self, session: Session):
        self._session = session

    def add(self, delegation: Delegation) -> Delegation:
        model = DelegationModel.from_dto(delegation)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get(self, delegation_id: UUID) -> Delegation | None:
        model = self._session.get(DelegationModel, delegation_id)
        return model.to_dto() if model is not None else None

    def list_covering(self, at: datetime) -> list[Delegation]:
        """Active delegations whose ``[valid_from, valid_until)`` contains ``at``."""
        stmt = (
            select(DelegationModel)
            .where(
                DelegationModel.active == True,  # noqa: E712
                DelegationModel.valid_from <= at,
                DelegationModel.valid_until > at,
            )
            .order_by(DelegationModel.created_at, DelegationModel.id)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_overlapping(
        self,
        valid_from: datetime,
        valid_until: datetime,
    ) -> list[Delegation]:
        """Active delegations intersecting ``[valid_from, valid_until)``."""
        stmt = (
            select(DelegationModel)
            .where(
                DelegationModel.active == True,  # noqa: E712
                DelegationModel.valid_from < valid_until,
                DelegationModel.valid_until > valid_from,
            )
            .order_by(DelegationModel.created_at, DelegationModel.id)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def revoke(
        self,
        delegation_id: UUID,
        revoked_at: datetime,
        revoked_by: str,
    ) -> Delegation:
        model = self._session.get(DelegationModel, delegation_id)
        if model is None:
            raise DelegationNotFoundError(delegation_id)
        model.active = False
        model.revoked_at = revoked_at
        model.revoked_by = revoked_by
        self._session.flush()
        return model.to_dto()
