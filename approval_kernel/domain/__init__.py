"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    APPROVER_ACTIONS,
    REQUEST_TRANSITIONS,
    TERMINAL_DECISIONS,
    TERMINAL_REQUEST_STATUSES,
    ApprovalConfiguration,
    ApprovalRequest,
    ApprovalStrategy,
    Approver,
    AuditExport,
    BusinessHours,
    ConfigurationStatus,
    DecisionAction,
    DecisionEvent,
    Delegation,
    DelegationScope,
    Notification,
    NotificationKind,
    RequestStatus,
    StaticUserDirectory,
    TickReport,
    UserDirectory,
    can_transition,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "APPROVER_ACTIONS",
    "REQUEST_TRANSITIONS",
    "TERMINAL_DECISIONS",
    "TERMINAL_REQUEST_STATUSES",
    "ApprovalConfiguration",
    "ApprovalRequest",
    "ApprovalStrategy",
    "Approver",
    "AuditExport",
    "BusinessHours",
    "Clock",
    "ConfigurationStatus",
    "DecisionAction",
    "DecisionEvent",
    "Delegation",
    "DelegationScope",
    "DeterministicClock",
    "Notification",
    "NotificationKind",
    "RequestStatus",
    "StaticUserDirectory",
    "SystemClock",
    "TickReport",
    "UserDirectory",
    "can_transition",
]
