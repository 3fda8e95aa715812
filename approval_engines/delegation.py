"""
Module: approval_engines.delegation
Responsibility:
    Resolve who currently holds an approval duty by following delegation
    chains, and check a proposed delegation against the existing graph.

Architecture position:
    Engines -- pure functions over delegation snapshots, zero I/O.

Invariants enforced:
    - Depth limit: a chain longer than ``max_depth`` hops fails with
      DelegationTooDeepError.
    - Cycle detection: revisiting a user fails with DelegationCycleError,
      carrying the path walked.
    - Determinism: when several delegations leave the same user at ``at``,
      the most specific scope wins (request > configuration > global), then
      the most recently created, then the lowest id.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from uuid import UUID

from approval_kernel.domain.approval import Delegation, DelegationScope
from approval_kernel.exceptions import DelegationCycleError, DelegationTooDeepError

DEFAULT_MAX_DEPTH = 5

_SCOPE_RANK = {
    DelegationScope.REQUEST: 0,
    DelegationScope.CONFIGURATION: 1,
    DelegationScope.GLOBAL: 2,
}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _preference(delegation: Delegation) -> tuple:
    created = delegation.created_at or _EPOCH
    return (_SCOPE_RANK[delegation.scope], -created.timestamp(), str(delegation.id))


def select_delegation(
    user_id: str,
    at: datetime,
    delegations: Iterable[Delegation],
    request_id: UUID | None = None,
    configuration_id: UUID | None = None,
) -> Delegation | None:
    """The delegation that moves ``user_id``'s duty at ``at``, if any."""
    applicable = [
        d for d in delegations
        if d.from_user_id == user_id
        and d.covers(at)
        and d.applies_to(request_id, configuration_id)
    ]
    if not applicable:
        return None
    return min(applicable, key=_preference)


def resolve_delegation_path(
    approver_id: str,
    at: datetime,
    delegations: Sequence[Delegation],
    request_id: UUID | None = None,
    configuration_id: UUID | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> tuple[str, ...]:
    """Users visited from ``approver_id`` to the effective holder, inclusive."""
    path = [approver_id]
    visited = {approver_id}
    current = approver_id
    while True:
        delegation = select_delegation(
            current, at, delegations, request_id, configuration_id,
        )
        if delegation is None:
            return tuple(path)
        nxt = delegation.to_user_id
        if nxt in visited:
            raise DelegationCycleError(path + [nxt])
        if len(path) > max_depth:
            raise DelegationTooDeepError(path + [nxt], max_depth)
        path.append(nxt)
        visited.add(nxt)
        current = nxt


def resolve_delegate(
    approver_id: str,
    at: datetime,
    delegations: Sequence[Delegation],
    request_id: UUID | None = None,
    configuration_id: UUID | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> str:
    """Effective approver for ``approver_id`` at ``at``."""
    return resolve_delegation_path(
        approver_id, at, delegations, request_id, configuration_id, max_depth,
    )[-1]


def _boundaries(
    candidate: Delegation,
    delegations: Iterable[Delegation],
) -> list[datetime]:
    """Instants in the candidate's window where the active edge set changes."""
    instants = {candidate.valid_from}
    for d in delegations:
        for t in (d.valid_from, d.valid_until):
            if candidate.valid_from <= t < candidate.valid_until:
                instants.add(t)
    return sorted(instants)


def scope_contexts(
    candidate: Delegation,
    existing: Iterable[Delegation],
    request_configurations: Mapping[UUID, UUID | None] | None = None,
) -> list[tuple[UUID | None, UUID | None]]:
    """Request contexts in which ``candidate`` meets other delegations.

    A request-scoped delegation resolves together with the configuration
    and global delegations of its request, so its context carries the
    request's configuration id from ``request_configurations``.
    """
    configurations = request_configurations or {}
    contexts = set()
    for d in (candidate, *existing):
        if d.request_id is not None:
            context = (d.request_id, configurations.get(d.request_id))
        else:
            context = (None, d.configuration_id)
        if candidate.applies_to(*context):
            contexts.add(context)
    return sorted(contexts, key=lambda c: (str(c[0]), str(c[1])))


def check_new_delegation(
    candidate: Delegation,
    existing: Sequence[Delegation],
    max_depth: int = DEFAULT_MAX_DEPTH,
    request_configurations: Mapping[UUID, UUID | None] | None = None,
) -> None:
    """Raise if adding ``candidate`` creates a cycle or an over-long chain.

    The graph is checked in every scope context the candidate takes part
    in (see ``scope_contexts``), at every instant of its window where the
    edge set changes.  Only chains that pass through the candidate's
    delegator are considered.
    """
    graph = [*existing, candidate]
    starts = sorted({d.from_user_id for d in graph})
    instants = _boundaries(candidate, existing)
    for request_id, configuration_id in scope_contexts(
        candidate, existing, request_configurations,
    ):
        for at in instants:
            for start in starts:
                try:
                    resolve_delegation_path(
                        start, at, graph,
                        request_id=request_id,
                        configuration_id=configuration_id,
                        max_depth=max_depth,
                    )
                except (DelegationCycleError, DelegationTooDeepError) as exc:
                    if candidate.from_user_id in exc.path:
                        raise


def is_delegating_away(
    user_id: str,
    delegations: Iterable[Delegation],
    request_id: UUID | None = None,
    configuration_id: UUID | None = None,
) -> bool:
    """True when ``user_id`` has an active delegation in this scope context."""
    return any(
        d.from_user_id == user_id
        and d.active
        and d.applies_to(request_id, configuration_id)
        for d in delegations
    )
