"""
Approval Kernel

A persistent approval-workflow engine with:
- Rule selection over prioritized, filtered configurations
- Unanimous / majority / quorum / single-approver strategies
- First-class, cycle-checked delegation
- Hash-chained, append-only decision audit trail
- Business-hours aware reminders, escalations and expiry
- Optimistic per-request concurrency control
"""

__version__ = "0.1.0"
