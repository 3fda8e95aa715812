"""Services for the approval kernel (write side and read side)."""

from approval_kernel.services.decision_recorder import DecisionRecorder, compute_anchor_hash
from approval_kernel.services.delegation_service import DelegationService
from approval_kernel.services.notification import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
)
from approval_kernel.services.rule_store import RuleStore
from approval_kernel.services.sequence_service import SequenceService
from approval_kernel.services.workflow_service import ApprovalWorkflowService

__all__ = [
    "ApprovalWorkflowService",
    "DecisionRecorder",
    "DelegationService",
    "InMemoryNotificationSink",
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "NotificationSink",
    "RuleStore",
    "SequenceService",
    "compute_anchor_hash",
]
