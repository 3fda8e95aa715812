"""
Repository interfaces (``approval_kernel.repositories.base``).

Responsibility
--------------
Persistence boundary of the engine.  Services and the workflow orchestrator
talk to these protocols only and exchange frozen domain DTOs; ORM models
never leak past a repository.

Invariants enforced
-------------------
* ``RequestRepository.update`` is an optimistic-concurrency write: the DTO's
  ``version`` must equal the stored version, otherwise OptimisticLockError.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Protocol
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalRequest,
    Approver,
    ConfigurationStatus,
    DecisionEvent,
    Delegation,
    RequestStatus,
)


class ConfigurationRepository(Protocol):
    def add(self, configuration: ApprovalConfiguration) -> ApprovalConfiguration: ...

    def get(self, configuration_id: UUID) -> ApprovalConfiguration | None: ...

    def list_for_action(
        self, action_type: str, status: ConfigurationStatus | None = None,
    ) -> list[ApprovalConfiguration]: ...

    def list_all(self) -> list[ApprovalConfiguration]: ...

    def set_status(
        self, configuration_id: UUID, status: ConfigurationStatus,
    ) -> ApprovalConfiguration: ...

    def add_approver(self, approver: Approver) -> Approver: ...

    def list_approvers(
        self, configuration_id: UUID, active_only: bool = True,
    ) -> list[Approver]: ...

    def set_approver_active(
        self, configuration_id: UUID, user_id: str, active: bool,
    ) -> Approver: ...


class RequestRepository(Protocol):
    def add(self, request: ApprovalRequest) -> ApprovalRequest: ...

    def get(self, request_id: UUID) -> ApprovalRequest | None: ...

    def get_by_code(self, code: str) -> ApprovalRequest | None: ...

    def update(self, request: ApprovalRequest) -> ApprovalRequest: ...

    def list_due(self, now: datetime) -> list[ApprovalRequest]: ...

    def list_pending(self) -> list[ApprovalRequest]: ...

    def list_by_requester(
        self, requester_id: str, status: RequestStatus | None = None,
    ) -> list[ApprovalRequest]: ...

    def list_created_between(
        self,
        since: datetime | None,
        until: datetime | None,
        org_unit: str | None = None,
    ) -> list[ApprovalRequest]: ...


class EventRepository(Protocol):
    def add(self, event: DecisionEvent) -> DecisionEvent: ...

    def last_for_request(self, request_id: UUID) -> DecisionEvent | None: ...

    def list_for_request(self, request_id: UUID) -> list[DecisionEvent]: ...

    def list_for_requests(self, request_ids: Collection[UUID]) -> list[DecisionEvent]: ...


class DelegationRepository(Protocol):
    def add(self, delegation: Delegation) -> Delegation: ...

    def get(self, delegation_id: UUID) -> Delegation | None: ...

    def list_covering(self, at: datetime) -> list[Delegation]: ...

    def list_overlapping(
        self, valid_from: datetime, valid_until: datetime,
    ) -> list[Delegation]: ...

    def revoke(
        self, delegation_id: UUID, revoked_at: datetime, revoked_by: str,
    ) -> Delegation: ...
