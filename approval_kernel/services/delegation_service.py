"""
DelegationService -- recording, revoking and resolving delegations.

Responsibility:
    Validates and persists time-bounded delegations of approval duty and
    resolves the effective approver for an approver at an instant.

Architecture position:
    Kernel > Services -- imperative shell over DelegationRepository.
    Graph checks are the pure ``approval_engines.delegation`` functions.

Invariants enforced:
    - No self-delegation and a non-empty ``[valid_from, valid_until)``.
    - A new delegation never closes a cycle or produces a chain longer
      than ``max_depth`` in any request context where it resolves together
      with other delegations (global, configuration and request scopes).
    - The delegate must be active in the user directory and must not be
      delegating away in the same scope context.
    - Delegations are revoked, never deleted.

Failure modes:
    - InvalidDelegationError, DelegationCycleError, DelegationTooDeepError,
      DelegationTargetUnavailableError on create.
    - DelegationNotFoundError on revoke of an unknown id.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta
from uuid import UUID

from approval_engines.delegation import (
    DEFAULT_MAX_DEPTH,
    check_new_delegation,
    is_delegating_away,
    resolve_delegation_path,
)
from approval_kernel.domain.approval import (
    ApprovalRequest,
    Delegation,
    StaticUserDirectory,
    UserDirectory,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    DelegationNotFoundError,
    DelegationTargetUnavailableError,
    InvalidDelegationError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.repositories.base import DelegationRepository

logger = get_logger("services.delegation")


class DelegationService:
    """Delegation lifecycle and resolution.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        delegations: DelegationRepository,
        user_directory: UserDirectory | None = None,
        clock: Clock | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        default_hours: int = 24,
        request_configuration: Callable[[UUID], UUID | None] | None = None,
    ):
        self._delegations = delegations
        self._request_configuration = request_configuration
        self._directory = user_directory or StaticUserDirectory()
        self._clock = clock or SystemClock()
        self._max_depth = max_depth
        self._default_hours = default_hours

    def create(self, delegation: Delegation) -> Delegation:
        """Validate and persist a new delegation."""
        now = self._clock.now()
        if delegation.created_at is None:
            delegation = replace(delegation, created_at=now)

        if delegation.from_user_id == delegation.to_user_id:
            raise InvalidDelegationError(delegation.from_user_id, "cannot delegate to self")
        if delegation.valid_until <= delegation.valid_from:
            raise InvalidDelegationError(
                delegation.from_user_id, "valid_until must be after valid_from",
            )
        if delegation.valid_until <= now:
            raise InvalidDelegationError(delegation.from_user_id, "window already ended")

        overlapping = self._delegations.list_overlapping(
            delegation.valid_from, delegation.valid_until,
        )
        configurations = self._request_configurations(delegation, overlapping)
        check_new_delegation(
            delegation, overlapping, self._max_depth, configurations,
        )

        if not self._directory.is_active(delegation.to_user_id):
            raise DelegationTargetUnavailableError(delegation.to_user_id, "inactive")
        if is_delegating_away(
            delegation.to_user_id,
            overlapping,
            delegation.request_id,
            delegation.configuration_id
            or configurations.get(delegation.request_id),
        ):
            raise DelegationTargetUnavailableError(
                delegation.to_user_id, "already delegating in this scope",
            )

        stored = self._delegations.add(delegation)
        logger.info(
            "delegation_recorded",
            extra={
                "delegation_id": str(stored.id),
                "from_user_id": stored.from_user_id,
                "to_user_id": stored.to_user_id,
                "scope": stored.scope.value,
                "valid_from": stored.valid_from,
                "valid_until": stored.valid_until,
            },
        )
        return stored

    def _request_configurations(
        self,
        candidate: Delegation,
        overlapping: Sequence[Delegation],
    ) -> dict[UUID, UUID | None]:
        """Configuration of every request named by a request-scoped delegation."""
        if self._request_configuration is None:
            return {}
        request_ids = {
            d.request_id for d in (candidate, *overlapping) if d.request_id is not None
        }
        return {rid: self._request_configuration(rid) for rid in request_ids}

    def default_window(self, valid_from: datetime | None = None) -> tuple[datetime, datetime]:
        start = valid_from or self._clock.now()
        return start, start + timedelta(hours=self._default_hours)

    def revoke(self, delegation_id, revoked_by: str) -> Delegation:
        existing = self._delegations.get(delegation_id)
        if existing is None:
            raise DelegationNotFoundError(delegation_id)
        if not existing.active:
            return existing
        revoked = self._delegations.revoke(delegation_id, self._clock.now(), revoked_by)
        logger.info(
            "delegation_revoked",
            extra={"delegation_id": str(delegation_id), "revoked_by": revoked_by},
        )
        return revoked

    def get(self, delegation_id) -> Delegation:
        existing = self._delegations.get(delegation_id)
        if existing is None:
            raise DelegationNotFoundError(delegation_id)
        return existing

    def covering(self, at: datetime) -> list[Delegation]:
        return self._delegations.list_covering(at)

    def resolve_path(
        self,
        approver_id: str,
        at: datetime,
        request: ApprovalRequest | None = None,
        delegations: Sequence[Delegation] | None = None,
    ) -> tuple[str, ...]:
        if delegations is None:
            delegations = self._delegations.list_covering(at)
        return resolve_delegation_path(
            approver_id,
            at,
            delegations,
            request_id=request.id if request is not None else None,
            configuration_id=request.configuration_id if request is not None else None,
            max_depth=self._max_depth,
        )

    def resolve(
        self,
        approver_id: str,
        at: datetime,
        request: ApprovalRequest | None = None,
        delegations: Sequence[Delegation] | None = None,
    ) -> str:
        """Effective approver for ``approver_id`` at ``at``.

        Without a request only global delegations are followed.
        """
        return self.resolve_path(approver_id, at, request, delegations)[-1]
