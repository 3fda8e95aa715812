"""
approval_batch -- composition root and timer scheduling.

Wires settings, database, notification dispatch and the workflow service
into an ``ApprovalEngine`` and runs the periodic timer sweep that applies
expiry, escalation, reminders and expiry warnings.

Architecture:
    approval_batch/ is a top-level package.  Nothing in approval_kernel or
    approval_engines imports from it.
"""

from approval_batch.orchestrator import ApprovalEngine
from approval_batch.scheduler import ApprovalTimerScheduler

__all__ = ["ApprovalEngine", "ApprovalTimerScheduler"]
