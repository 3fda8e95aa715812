"""
Rule-set Validator (``approval_config.validator``).

Responsibility
--------------
Validates a parsed ``RuleSet`` before it is seeded into the rule store:
field-level and approver-count checks per configuration, plus set-level
checks the database cannot express.

Invariants enforced
-------------------
* Every configuration passes the kernel's structural validation.
* Configuration names are unique within a set.
* Two configurations that tie on action type, filters and priority make
  selection depend on creation order; reported as a warning.

Failure modes
-------------
* Errors  -> the rule set MUST NOT be loaded.
* Warnings -> may be loaded but should be reviewed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from approval_config.schema import RuleSet, RuleSetEntry
from approval_kernel.domain.approval import Approver
from approval_kernel.domain.validation import validate_approvers, validate_configuration


@dataclass
class RuleSetValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _entry_approvers(entry: RuleSetEntry) -> list[Approver]:
    return [
        Approver(
            user_id=a.user_id,
            configuration_id=entry.configuration.id,
            active=a.active,
            weight=a.weight,
            order=a.order,
            min_value=a.min_value,
            max_value=a.max_value,
        )
        for a in entry.approvers
    ]


def _selection_key(entry: RuleSetEntry) -> tuple:
    c = entry.configuration
    return (
        c.action_type, c.requester_profile, c.org_unit,
        c.min_value, c.max_value, c.priority_rank,
    )


def validate_rule_set(rule_set: RuleSet) -> RuleSetValidationResult:
    result = RuleSetValidationResult()

    for entry in rule_set.entries:
        name = entry.configuration.name or entry.configuration.action_type
        for error in validate_configuration(entry.configuration):
            result.errors.append(f"{name}: {error}")
        for error in validate_approvers(entry.configuration, _entry_approvers(entry)):
            result.errors.append(f"{name}: {error}")

    names = Counter(e.configuration.name for e in rule_set.entries)
    for name, count in sorted(names.items()):
        if count > 1:
            result.errors.append(f"duplicate configuration name '{name}' ({count}x)")

    keys = Counter(_selection_key(e) for e in rule_set.entries)
    for key, count in keys.items():
        if count > 1:
            result.warnings.append(
                f"{count} configurations for '{key[0]}' share filters and "
                f"priority {key[-1]}; the most recently created wins"
            )

    return result
