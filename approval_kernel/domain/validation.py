"""
Structural validation of approval configurations.

Pure functions returning human-readable error strings; an empty list means
the configuration can govern requests.  Used by the rule store before a
configuration is persisted and by the YAML rule-set validator.
"""

from __future__ import annotations

from collections.abc import Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalStrategy,
    Approver,
)


def _positive(errors: list[str], name: str, value: int | None, required: bool = False) -> None:
    if value is None:
        if required:
            errors.append(f"{name} is required")
        return
    if value <= 0:
        errors.append(f"{name} must be > 0 (got {value})")


def validate_configuration(configuration: ApprovalConfiguration) -> list[str]:
    """Field-level checks that do not depend on approver bindings."""
    errors: list[str] = []
    c = configuration

    if not c.action_type:
        errors.append("action_type is required")
    if c.min_approvals < 1:
        errors.append(f"min_approvals must be >= 1 (got {c.min_approvals})")
    if c.max_approvals is not None and c.max_approvals < c.min_approvals:
        errors.append(
            f"max_approvals ({c.max_approvals}) < min_approvals ({c.min_approvals})"
        )
    _positive(errors, "time_limit_hours", c.time_limit_hours, required=True)
    _positive(errors, "reminder_hours", c.reminder_hours)
    _positive(errors, "escalation_hours", c.escalation_hours)
    if c.max_escalation_level < 0:
        errors.append(f"max_escalation_level must be >= 0 (got {c.max_escalation_level})")
    for h in c.expiry_warning_hours:
        if h <= 0:
            errors.append(f"expiry_warning_hours entries must be > 0 (got {h})")
    if (
        c.min_value is not None
        and c.max_value is not None
        and c.min_value > c.max_value
    ):
        errors.append(f"min_value ({c.min_value}) > max_value ({c.max_value})")
    if (
        c.valid_from is not None
        and c.valid_until is not None
        and c.valid_until <= c.valid_from
    ):
        errors.append("valid_until must be after valid_from")

    hours = c.business_hours
    if hours is not None:
        if not hours.weekdays:
            errors.append("business_hours.weekdays must not be empty")
        if any(d not in range(7) for d in hours.weekdays):
            errors.append("business_hours.weekdays must be within 0 (Mon) .. 6 (Sun)")
        if hours.start >= hours.end:
            errors.append("business_hours.start must be before business_hours.end")
        try:
            ZoneInfo(hours.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"unknown timezone '{hours.timezone}'")

    return errors


def validate_approvers(
    configuration: ApprovalConfiguration,
    approvers: Sequence[Approver],
) -> list[str]:
    """Approver-count invariant and binding sanity."""
    errors: list[str] = []
    active = [a for a in approvers if a.active]
    user_ids = [a.user_id for a in approvers]
    if len(set(user_ids)) != len(user_ids):
        errors.append("approver user ids must be unique per configuration")

    if not active:
        errors.append("configuration has no active approvers")
    elif (
        configuration.strategy != ApprovalStrategy.SINGLE
        and len(active) < configuration.min_approvals
    ):
        errors.append(
            f"{configuration.strategy.value} needs at least "
            f"{configuration.min_approvals} active approvers, has {len(active)}"
        )

    for a in approvers:
        errors += validate_approver(a)
    return errors


def validate_approver(approver: Approver) -> list[str]:
    errors: list[str] = []
    if approver.weight < 1:
        errors.append(f"approver {approver.user_id} weight must be >= 1")
    if (
        approver.min_value is not None
        and approver.max_value is not None
        and approver.min_value > approver.max_value
    ):
        errors.append(f"approver {approver.user_id} min_value exceeds max_value")
    return errors
