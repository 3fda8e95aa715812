"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers wrap the engine in HTTP, RPC or CLI transports and must render an
actionable message for every rejection.  Parsing message strings is fragile,
so every error:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (request ids, user ids, reasons)

Example:
    try:
        workflow.decide(request_id, user_id, DecisionAction.APPROVE)
    except RequestExpiredError as e:
        api_response(code=e.code, request_id=str(e.request_id))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalEngineError (base)
    |
    +-- ConfigurationError
    |   +-- NoMatchingConfigurationError
    |   +-- MisconfiguredApproversError
    |   +-- InvalidConfigurationError
    |   +-- ConfigurationNotFoundError
    |
    +-- RequestError
    |   +-- RequestNotFoundError
    |   +-- RequestAlreadyResolvedError
    |   +-- RequestExpiredError
    |   +-- SelfApprovalForbiddenError
    |   +-- JustificationRequiredError
    |   +-- ApproverNotEligibleError
    |   +-- DuplicateDecisionError
    |   +-- CancellationNotAllowedError
    |   +-- InvalidStatusTransitionError
    |   +-- EscalationLimitReachedError
    |
    +-- DelegationError
    |   +-- DelegationCycleError
    |   +-- DelegationTooDeepError
    |   +-- DelegationTargetUnavailableError
    |   +-- InvalidDelegationError
    |   +-- DelegationNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- ConcurrentModificationError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |   +-- OutOfOrderEventError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
RETRY POLICY BY CATEGORY
===============================================================================

Category        | Retried?  | Notes
----------------|-----------|---------------------------------------------
Configuration   | never     | A human must fix the rule data
Request         | never     | Caller decides the UX
Delegation      | never     | A bad delegation could strand a request
Concurrency     | internal  | OptimisticLockError is retried by the workflow
                |           | service; ConcurrentModificationError surfaces
Audit           | never     | Reported as a data-integrity alert
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID


class ApprovalEngineError(Exception):
    """Base exception for all approval kernel errors."""

    code: str = "APPROVAL_ENGINE_ERROR"


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(ApprovalEngineError):
    """Base for rule-data errors. Never retried."""

    code: str = "CONFIGURATION_ERROR"


class NoMatchingConfigurationError(ConfigurationError):
    """No active, currently valid configuration matches the action."""

    code: str = "NO_MATCHING_CONFIGURATION"

    def __init__(
        self,
        action_type: str,
        requester_profile: str | None = None,
        org_unit: str | None = None,
        value: Decimal | None = None,
    ):
        self.action_type = action_type
        self.requester_profile = requester_profile
        self.org_unit = org_unit
        self.value = value
        super().__init__(
            f"No approval configuration matches action '{action_type}' "
            f"(profile={requester_profile}, org_unit={org_unit}, value={value})"
        )


class MisconfiguredApproversError(ConfigurationError):
    """The configuration cannot produce enough eligible approvers."""

    code: str = "MISCONFIGURED_APPROVERS"

    def __init__(self, configuration_id: UUID, eligible: int, required: int):
        self.configuration_id = configuration_id
        self.eligible = eligible
        self.required = required
        super().__init__(
            f"Configuration {configuration_id} has {eligible} eligible "
            f"approvers but needs at least {required}"
        )


class InvalidConfigurationError(ConfigurationError):
    """Configuration data failed validation."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, action_type: str, errors: list[str]):
        self.action_type = action_type
        self.errors = list(errors)
        super().__init__(
            f"Invalid configuration for '{action_type}': " + "; ".join(self.errors)
        )


class ConfigurationNotFoundError(ConfigurationError):
    """Configuration id does not exist."""

    code: str = "CONFIGURATION_NOT_FOUND"

    def __init__(self, configuration_id: UUID):
        self.configuration_id = configuration_id
        super().__init__(f"Approval configuration not found: {configuration_id}")


# =============================================================================
# Request / state errors
# =============================================================================


class RequestError(ApprovalEngineError):
    """Base for request state errors."""

    code: str = "REQUEST_ERROR"


class RequestNotFoundError(RequestError):
    """Approval request id does not exist."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: UUID):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class RequestAlreadyResolvedError(RequestError):
    """Request is in a terminal status."""

    code: str = "REQUEST_ALREADY_RESOLVED"

    def __init__(self, request_id: UUID, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Approval request {request_id} is already {status}")


class RequestExpiredError(RequestError):
    """Decision arrived at or after the request deadline."""

    code: str = "REQUEST_EXPIRED"

    def __init__(self, request_id: UUID, expires_at: datetime):
        self.request_id = request_id
        self.expires_at = expires_at
        super().__init__(
            f"Approval request {request_id} expired at {expires_at.isoformat()}"
        )


class SelfApprovalForbiddenError(RequestError):
    """Requester tried to decide their own request."""

    code: str = "SELF_APPROVAL_FORBIDDEN"

    def __init__(self, request_id: UUID, user_id: str):
        self.request_id = request_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} may not decide their own request {request_id}"
        )


class JustificationRequiredError(RequestError):
    """Configuration requires a justification for this action."""

    code: str = "JUSTIFICATION_REQUIRED"

    def __init__(self, request_id: UUID, action: str):
        self.request_id = request_id
        self.action = action
        super().__init__(
            f"A justification is required to {action} request {request_id}"
        )


class ApproverNotEligibleError(RequestError):
    """Acting user holds no undecided approval duty on the request."""

    code: str = "APPROVER_NOT_ELIGIBLE"

    def __init__(self, request_id: UUID, user_id: str, reason: str):
        self.request_id = request_id
        self.user_id = user_id
        self.reason = reason
        super().__init__(
            f"User {user_id} is not eligible to decide request "
            f"{request_id}: {reason}"
        )


class DuplicateDecisionError(RequestError):
    """Approver already cast a terminal decision."""

    code: str = "DUPLICATE_DECISION"

    def __init__(self, request_id: UUID, approver_id: str):
        self.request_id = request_id
        self.approver_id = approver_id
        super().__init__(
            f"Approver {approver_id} already decided request {request_id}"
        )


class CancellationNotAllowedError(RequestError):
    """Only the requester or an administrator may cancel."""

    code: str = "CANCELLATION_NOT_ALLOWED"

    def __init__(self, request_id: UUID, user_id: str):
        self.request_id = request_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} may not cancel approval request {request_id}"
        )


class InvalidStatusTransitionError(RequestError):
    """Status change not allowed by the request state machine."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, request_id: UUID, from_status: str, to_status: str):
        self.request_id = request_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Request {request_id}: transition {from_status} -> {to_status} "
            f"is not allowed"
        )


class EscalationLimitReachedError(RequestError):
    """Manual escalation beyond the configured maximum level."""

    code: str = "ESCALATION_LIMIT_REACHED"

    def __init__(self, request_id: UUID, max_level: int):
        self.request_id = request_id
        self.max_level = max_level
        super().__init__(
            f"Request {request_id} is already at escalation level {max_level}"
        )


# =============================================================================
# Delegation errors
# =============================================================================


class DelegationError(ApprovalEngineError):
    """Base for delegation errors. Never silently ignored."""

    code: str = "DELEGATION_ERROR"


class DelegationCycleError(DelegationError):
    """Delegation chain revisits a user."""

    code: str = "DELEGATION_CYCLE"

    def __init__(self, path: list[str]):
        self.path = list(path)
        super().__init__(f"Delegation cycle detected: {' -> '.join(self.path)}")


class DelegationTooDeepError(DelegationError):
    """Delegation chain exceeds the hop limit."""

    code: str = "DELEGATION_TOO_DEEP"

    def __init__(self, path: list[str], max_depth: int):
        self.path = list(path)
        self.max_depth = max_depth
        super().__init__(
            f"Delegation chain exceeds {max_depth} hops: {' -> '.join(self.path)}"
        )


class DelegationTargetUnavailableError(DelegationError):
    """Delegation target is inactive or is delegating away."""

    code: str = "DELEGATION_TARGET_UNAVAILABLE"

    def __init__(self, to_user_id: str, reason: str):
        self.to_user_id = to_user_id
        self.reason = reason
        super().__init__(f"Cannot delegate to {to_user_id}: {reason}")


class InvalidDelegationError(DelegationError):
    """Delegation record is malformed (self-delegation, empty window)."""

    code: str = "INVALID_DELEGATION"

    def __init__(self, from_user_id: str, reason: str):
        self.from_user_id = from_user_id
        self.reason = reason
        super().__init__(f"Invalid delegation from {from_user_id}: {reason}")


class DelegationNotFoundError(DelegationError):
    """Delegation id does not exist."""

    code: str = "DELEGATION_NOT_FOUND"

    def __init__(self, delegation_id: UUID):
        self.delegation_id = delegation_id
        super().__init__(f"Delegation not found: {delegation_id}")


# =============================================================================
# Concurrency errors
# =============================================================================


class ConcurrencyError(ApprovalEngineError):
    """Base for concurrency conflicts."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row version changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_FAILED"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification detected on {entity_type} {entity_id}"
        )


class ConcurrentModificationError(ConcurrencyError):
    """Optimistic retries exhausted."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"{entity_type} {entity_id} kept changing underneath "
            f"{attempts} attempts"
        )


# =============================================================================
# Audit errors
# =============================================================================


class AuditError(ApprovalEngineError):
    """Base for audit-trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Decision event hash chain failed recomputation."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(
        self,
        request_id: UUID,
        seq: int,
        expected_hash: str,
        actual_hash: str,
    ):
        self.request_id = request_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Decision chain of request {request_id} broken at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class OutOfOrderEventError(AuditError):
    """Event timestamp precedes the last recorded event."""

    code: str = "OUT_OF_ORDER_EVENT"

    def __init__(
        self,
        request_id: UUID,
        last_created_at: datetime,
        created_at: datetime,
    ):
        self.request_id = request_id
        self.last_created_at = last_created_at
        self.created_at = created_at
        super().__init__(
            f"Event for request {request_id} at {created_at.isoformat()} "
            f"precedes last event at {last_created_at.isoformat()}"
        )


# =============================================================================
# Immutability errors
# =============================================================================


class ImmutabilityError(ApprovalEngineError):
    """Base for append-only violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
