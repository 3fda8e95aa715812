"""
Configuration schema (``approval_config.schema``).

Responsibility
--------------
Frozen dataclasses produced by the YAML loader: engine settings and rule
sets (configurations with their approver bindings).

Architecture position
---------------------
**Config layer** -- pure data.  Rule-set entries carry kernel domain
``ApprovalConfiguration`` values so they can be handed to the rule store
unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from approval_kernel.domain.approval import ApprovalConfiguration


@dataclass(frozen=True)
class ApproverDef:
    user_id: str
    weight: int = 1
    order: int | None = None
    active: bool = True
    min_value: Decimal | None = None
    max_value: Decimal | None = None


@dataclass(frozen=True)
class RuleSetEntry:
    """One configuration and the approvers bound to it."""

    configuration: ApprovalConfiguration
    approvers: tuple[ApproverDef, ...] = ()


@dataclass(frozen=True)
class RuleSet:
    name: str
    entries: tuple[RuleSetEntry, ...] = ()
    checksum: str = ""


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the workflow service and timer scheduler."""

    database_url: str = "sqlite:///approvals.db"
    tick_interval_seconds: int = 300
    max_optimistic_retries: int = 3
    delegation_max_depth: int = 5
    default_delegation_hours: int = 24
    notification_queue_size: int = 1000
    notification_channel_hints: tuple[str, ...] = ("email",)
    admin_user_ids: frozenset[str] = field(default_factory=frozenset)
    inactive_user_ids: frozenset[str] = field(default_factory=frozenset)
    log_level: str = "INFO"
