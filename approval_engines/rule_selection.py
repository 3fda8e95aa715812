"""
Module: approval_engines.rule_selection
Responsibility:
    Pick the single configuration that governs a submitted action, and
    filter its approvers by their value limits.

Architecture position:
    Engines -- pure functions over configuration snapshots, zero I/O.

Invariants enforced:
    - Only ACTIVE configurations whose validity window contains ``now``
      participate (``valid_from`` inclusive, ``valid_until`` exclusive).
    - Deterministic total order: priority_rank desc, specificity desc,
      created_at desc, id.

Failure modes:
    - NoMatchingConfigurationError when nothing matches.  The caller must
      block the action; there is no implicit approval.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import ApprovalConfiguration, Approver
from approval_kernel.exceptions import NoMatchingConfigurationError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_currently_valid(configuration: ApprovalConfiguration, now: datetime) -> bool:
    if not configuration.is_active:
        return False
    if configuration.valid_from is not None and now < configuration.valid_from:
        return False
    if configuration.valid_until is not None and now >= configuration.valid_until:
        return False
    return True


def matches_filters(
    configuration: ApprovalConfiguration,
    requester_profile: str | None,
    org_unit: str | None,
    value: Decimal | None,
) -> bool:
    """A null filter matches anything; a value bound requires a value."""
    if (
        configuration.requester_profile is not None
        and configuration.requester_profile != requester_profile
    ):
        return False
    if configuration.org_unit is not None and configuration.org_unit != org_unit:
        return False
    if configuration.min_value is not None:
        if value is None or value < configuration.min_value:
            return False
    if configuration.max_value is not None:
        if value is None or value > configuration.max_value:
            return False
    return True


def covers_value(approver: Approver, value: Decimal | None) -> bool:
    """Whether a request of ``value`` falls within the approver's limits."""
    if approver.min_value is not None and (value is None or value < approver.min_value):
        return False
    if approver.max_value is not None and (value is None or value > approver.max_value):
        return False
    return True


def specificity(configuration: ApprovalConfiguration) -> int:
    """Number of non-null applicability filters."""
    return sum(
        f is not None
        for f in (
            configuration.requester_profile,
            configuration.org_unit,
            configuration.min_value,
            configuration.max_value,
        )
    )


def _sort_key(configuration: ApprovalConfiguration) -> tuple:
    created = configuration.created_at or _EPOCH
    return (
        -configuration.priority_rank,
        -specificity(configuration),
        -created.timestamp(),
        str(configuration.id),
    )


def rank_candidates(
    configurations: Iterable[ApprovalConfiguration],
    action_type: str,
    requester_profile: str | None,
    org_unit: str | None,
    value: Decimal | None,
    now: datetime,
) -> list[ApprovalConfiguration]:
    """All matching configurations, best first."""
    candidates = [
        c for c in configurations
        if c.action_type == action_type
        and is_currently_valid(c, now)
        and matches_filters(c, requester_profile, org_unit, value)
    ]
    return sorted(candidates, key=_sort_key)


@traced_engine(
    "rule_selection", "1.0",
    fingerprint_fields=("action_type", "requester_profile", "org_unit", "value", "now"),
)
def select_configuration(
    configurations: Iterable[ApprovalConfiguration],
    *,
    action_type: str,
    requester_profile: str | None = None,
    org_unit: str | None = None,
    value: Decimal | None = None,
    now: datetime,
) -> ApprovalConfiguration:
    """Return the governing configuration or raise NoMatchingConfigurationError."""
    ranked = rank_candidates(
        configurations, action_type, requester_profile, org_unit, value, now,
    )
    if not ranked:
        raise NoMatchingConfigurationError(
            action_type=action_type,
            requester_profile=requester_profile,
            org_unit=org_unit,
            value=value,
        )
    return ranked[0]
