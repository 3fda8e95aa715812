"""
DecisionRecorder -- append-only, hash-chained decision history.

Responsibility:
    Appends DecisionEvents to a request's chain, verifies the chain on
    demand and produces the read-only compliance export.

Architecture position:
    Kernel > Services -- imperative shell, called by the workflow service
    inside the transaction that changes the request.

Invariants enforced:
    - Append-only: events are never modified or deleted (ORM listeners on
      DecisionEventModel reject both).
    - Per-request ordering: ``seq`` is strictly increasing from 1 and
      ``created_at`` is non-decreasing along the chain.
    - Chain integrity: ``integrity_hash = H(canonical(fields) | prev_hash)``.
      The first event links to the request's ``anchor_hash``, which covers
      the request's immutable fields, so rewriting the request breaks the
      chain too.

Failure modes:
    - OutOfOrderEventError when an event predates its predecessor.
    - AuditChainBrokenError from ``assert_chain`` on any mismatch.
    - IntegrityError on a concurrent (request_id, seq) collision; the
      workflow service retries the whole operation.

Audit relevance:
    This IS the audit trail of the engine.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalRequest,
    AuditExport,
    DecisionEvent,
)
from approval_kernel.exceptions import (
    AuditChainBrokenError,
    OutOfOrderEventError,
    RequestNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.repositories.base import EventRepository, RequestRepository
from approval_kernel.utils.hashing import hash_chain_link, hash_payload

logger = get_logger("services.decision_recorder")


def compute_anchor_hash(request: ApprovalRequest) -> str:
    """Hash of the fields of a request that never change after submission."""
    return hash_payload({
        "id": request.id,
        "code": request.code,
        "configuration_id": request.configuration_id,
        "action_type": request.action_type,
        "required_approvals": request.required_approvals,
        "eligible_approvers": list(request.eligible_approvers),
        "requester_id": request.requester_id,
        "requester_profile": request.requester_profile,
        "requester_org_unit": request.requester_org_unit,
        "value": request.value,
        "payload": request.payload,
        "created_at": request.created_at,
        "expires_at": request.expires_at,
    })


def event_hash_fields(event: DecisionEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "request_id": event.request_id,
        "seq": event.seq,
        "action": event.action,
        "approver_id": event.approver_id,
        "acting_user_id": event.acting_user_id,
        "justification": event.justification,
        "delegated_to_user_id": event.delegated_to_user_id,
        "escalation_level": event.escalation_level,
        "is_automatic": event.is_automatic,
        "created_at": event.created_at,
    }


def find_chain_break(
    request: ApprovalRequest,
    events: list[DecisionEvent],
) -> tuple[int, str, str] | None:
    """First broken link as ``(seq, expected, actual)``, or None.

    ``seq`` 0 denotes the request anchor itself.
    """
    anchor = compute_anchor_hash(request)
    if anchor != request.anchor_hash:
        return (0, anchor, request.anchor_hash)

    prev = anchor
    last_created = None
    for expected_seq, event in enumerate(events, start=1):
        if event.seq != expected_seq:
            return (expected_seq, str(expected_seq), str(event.seq))
        if event.prev_hash != prev:
            return (expected_seq, prev, event.prev_hash or "")
        if last_created is not None and event.created_at < last_created:
            return (expected_seq, last_created.isoformat(), event.created_at.isoformat())
        recomputed = hash_chain_link(event_hash_fields(event), prev)
        if recomputed != event.integrity_hash:
            return (expected_seq, recomputed, event.integrity_hash or "")
        prev = event.integrity_hash
        last_created = event.created_at
    return None


class DecisionRecorder:
    """Appends and verifies decision chains.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT decide anything; events arrive fully formed except for
          their chain fields.
    """

    def __init__(self, requests: RequestRepository, events: EventRepository):
        self._requests = requests
        self._events = events

    def append(self, request: ApprovalRequest, event: DecisionEvent) -> DecisionEvent:
        """Link ``event`` to the end of ``request``'s chain and persist it.

        Returns the stored event carrying its ``seq`` and hashes.
        """
        last = self._events.last_for_request(request.id)
        if last is not None and event.created_at < last.created_at:
            raise OutOfOrderEventError(request.id, last.created_at, event.created_at)

        seq = last.seq + 1 if last is not None else 1
        prev_hash = last.integrity_hash if last is not None else request.anchor_hash
        linked = replace(event, request_id=request.id, seq=seq, prev_hash=prev_hash)
        linked = replace(
            linked,
            integrity_hash=hash_chain_link(event_hash_fields(linked), prev_hash),
        )
        stored = self._events.add(linked)

        logger.info(
            "decision_event_appended",
            extra={
                "request_id": str(request.id),
                "seq": seq,
                "action": event.action.value,
                "approver_id": event.approver_id,
                "acting_user_id": event.acting_user_id,
                "is_automatic": event.is_automatic,
            },
        )
        return stored

    def history(self, request_id: UUID) -> list[DecisionEvent]:
        return self._events.list_for_request(request_id)

    def _load(self, request_id: UUID) -> tuple[ApprovalRequest, list[DecisionEvent]]:
        request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request, self._events.list_for_request(request_id)

    def verify_chain(self, request_id: UUID) -> bool:
        request, events = self._load(request_id)
        broken = find_chain_break(request, events)
        if broken is None:
            return True
        seq, expected, actual = broken
        logger.error(
            "audit_chain_broken",
            extra={
                "request_id": str(request_id),
                "seq": seq,
                "expected": expected,
                "actual": actual,
            },
        )
        return False

    def assert_chain(self, request_id: UUID) -> None:
        request, events = self._load(request_id)
        broken = find_chain_break(request, events)
        if broken is not None:
            seq, expected, actual = broken
            raise AuditChainBrokenError(request_id, seq, expected, actual)

    def export_audit(self, request_id: UUID) -> AuditExport:
        request, events = self._load(request_id)
        broken = find_chain_break(request, events)
        if broken is not None:
            logger.error(
                "audit_chain_broken",
                extra={"request_id": str(request_id), "seq": broken[0]},
            )
        return AuditExport(
            request=request,
            events=tuple(events),
            chain_valid=broken is None,
            broken_at_seq=broken[0] if broken is not None else None,
        )
