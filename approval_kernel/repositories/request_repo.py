"""SQLAlchemy RequestRepository with optimistic-concurrency updates."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from approval_kernel.domain.approval import ApprovalRequest, RequestStatus
from approval_kernel.exceptions import OptimisticLockError, RequestNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.request import ApprovalRequestModel

logger = get_logger("repositories.request")


class SqlRequestRepository:
    """Approval requests stored through the ORM.

    ``update`` compares the DTO's version with a fresh read of the row and
    relies on the mapper's version_id_col for the window between that read
    and the flush.
    """

    def __init__(self, session: Session):
        self._session = session

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        model = ApprovalRequestModel.from_dto(request)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get(self, request_id: UUID) -> ApprovalRequest | None:
        model = self._load(request_id)
        return model.to_dto() if model is not None else None

    def get_by_code(self, code: str) -> ApprovalRequest | None:
        model = self._session.execute(
            select(ApprovalRequestModel).where(ApprovalRequestModel.code == code)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def update(self, request: ApprovalRequest) -> ApprovalRequest:
        model = self._load(request.id)
        if model is None:
            raise RequestNotFoundError(request.id)
        if model.version != request.version:
            logger.info(
                "request_version_conflict",
                extra={
                    "request_id": str(request.id),
                    "expected_version": request.version,
                    "actual_version": model.version,
                },
            )
            raise OptimisticLockError("ApprovalRequest", str(request.id))

        model.apply_dto(request)
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("ApprovalRequest", str(request.id)) from exc
        return model.to_dto()

    def list_due(self, now: datetime) -> list[ApprovalRequest]:
        """PENDING requests whose deadline is at or before ``now``."""
        stmt = (
            select(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.status == RequestStatus.PENDING.value,
                ApprovalRequestModel.expires_at <= now,
            )
            .order_by(ApprovalRequestModel.expires_at, ApprovalRequestModel.code)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_pending(self) -> list[ApprovalRequest]:
        stmt = (
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.status == RequestStatus.PENDING.value)
            .order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.code)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_by_requester(
        self,
        requester_id: str,
        status: RequestStatus | None = None,
    ) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.requester_id == requester_id,
        )
        if status is not None:
            stmt = stmt.where(ApprovalRequestModel.status == status.value)
        stmt = stmt.order_by(ApprovalRequestModel.created_at.desc(), ApprovalRequestModel.code)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_created_between(
        self,
        since: datetime | None,
        until: datetime | None,
        org_unit: str | None = None,
    ) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestModel)
        if since is not None:
            stmt = stmt.where(ApprovalRequestModel.created_at >= since)
        if until is not None:
            stmt = stmt.where(ApprovalRequestModel.created_at < until)
        if org_unit is not None:
            stmt = stmt.where(ApprovalRequestModel.requester_org_unit == org_unit)
        stmt = stmt.order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.code)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def _load(self, request_id: UUID) -> ApprovalRequestModel | None:
        return self._session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
