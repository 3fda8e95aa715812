"""SQLAlchemy EventRepository (append-only)."""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import DecisionEvent
from approval_kernel.models.decision_event import DecisionEventModel

_IN_CHUNK = 500


class SqlEventRepository:
    def __init__(self, session: Session):
        self._session = session

    def add(self, event: DecisionEvent) -> DecisionEvent:
        model = DecisionEventModel.from_dto(event)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def last_for_request(self, request_id: UUID) -> DecisionEvent | None:
        model = self._session.execute(
            select(DecisionEventModel)
            .where(DecisionEventModel.request_id == request_id)
            .order_by(DecisionEventModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_for_request(self, request_id: UUID) -> list[DecisionEvent]:
        stmt = (
            select(DecisionEventModel)
            .where(DecisionEventModel.request_id == request_id)
            .order_by(DecisionEventModel.seq)
            .execution_options(populate_existing=True)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_for_requests(self, request_ids: Collection[UUID]) -> list[DecisionEvent]:
        ids = sorted(request_ids, key=str)
        events: list[DecisionEvent] = []
        # bounded IN lists keep SQLite under its bound-parameter limit
        for start in range(0, len(ids), _IN_CHUNK):
            stmt = (
                select(DecisionEventModel)
                .where(DecisionEventModel.request_id.in_(ids[start:start + _IN_CHUNK]))
                .order_by(DecisionEventModel.request_id, DecisionEventModel.seq)
            )
            events.extend(m.to_dto() for m in self._session.execute(stmt).scalars())
        return events
