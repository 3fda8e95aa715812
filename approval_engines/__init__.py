"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    decision engines: rule selection, strategy evaluation, delegation
    resolution, business time, timer evaluation and statistics.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import approval_kernel.domain, approval_kernel.exceptions and
    the kernel logger.  MUST NOT import models, repositories or services.

Invariants enforced:
    - Purity: engines never read the wall clock.  ``now`` is always an
      explicit parameter supplied by the caller's injected Clock.
    - Determinism: identical inputs always produce identical outputs.
"""

from approval_engines.business_time import (
    BusinessCalendar,
    add_business_hours,
    business_elapsed,
    elapsed_hours,
)
from approval_engines.delegation import (
    DEFAULT_MAX_DEPTH,
    check_new_delegation,
    is_delegating_away,
    resolve_delegate,
    resolve_delegation_path,
    scope_contexts,
    select_delegation,
)
from approval_engines.metrics import (
    ActionTypeStatistics,
    ApprovalStatistics,
    ApproverStatistics,
    compute_statistics,
)
from approval_engines.rule_selection import (
    covers_value,
    is_currently_valid,
    matches_filters,
    rank_candidates,
    select_configuration,
    specificity,
)
from approval_engines.strategy import (
    evaluate_request,
    evaluate_tally,
    minimum_approvers,
    required_approvals,
)
from approval_engines.timers import TimerDecision, evaluate_timers

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "ActionTypeStatistics",
    "ApprovalStatistics",
    "ApproverStatistics",
    "BusinessCalendar",
    "TimerDecision",
    "add_business_hours",
    "business_elapsed",
    "check_new_delegation",
    "compute_statistics",
    "covers_value",
    "elapsed_hours",
    "evaluate_request",
    "evaluate_tally",
    "evaluate_timers",
    "is_currently_valid",
    "is_delegating_away",
    "matches_filters",
    "minimum_approvers",
    "rank_candidates",
    "required_approvals",
    "resolve_delegate",
    "resolve_delegation_path",
    "scope_contexts",
    "select_configuration",
    "select_delegation",
    "specificity",
]
