"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into ``approval_config.schema`` dataclasses:
rule sets (approval configurations with approver bindings) and engine
settings.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Callers go through
``approval_config`` (package entrypoint); services never read files.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* ``compute_checksum`` is a deterministic SHA-256 of the raw document for
  change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, time, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import yaml

from approval_config.schema import ApproverDef, EngineSettings, RuleSet, RuleSetEntry
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    ApprovalStrategy,
    BusinessHours,
    ConfigurationStatus,
)

_WEEKDAY_NAMES = {
    "mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_datetime(value: Any) -> datetime:
    """Parse an instant; naive values and bare dates are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time(0, 0))
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Cannot parse datetime from {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        # YAML 1.1 reads unquoted 8:00 as sexagesimal minutes
        return time(value // 60, value % 60)
    if isinstance(value, str):
        return time.fromisoformat(value)
    raise ValueError(f"Cannot parse time from {value!r}")


def parse_weekday(value: Any) -> int:
    if isinstance(value, int):
        return value
    key = str(value).strip().lower()[:3]
    if key not in _WEEKDAY_NAMES:
        raise ValueError(f"Unknown weekday {value!r}")
    return _WEEKDAY_NAMES[key]


def parse_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def parse_business_hours(data: dict[str, Any] | None) -> BusinessHours | None:
    if not data:
        return None
    return BusinessHours(
        weekdays=frozenset(parse_weekday(d) for d in data["weekdays"]),
        start=parse_time(data["start"]),
        end=parse_time(data["end"]),
        timezone=data.get("timezone", "UTC"),
    )


def parse_approver(data: dict[str, Any] | str) -> ApproverDef:
    if isinstance(data, str):
        return ApproverDef(user_id=data)
    return ApproverDef(
        user_id=str(data["user_id"]),
        weight=int(data.get("weight", 1)),
        order=data.get("order"),
        active=bool(data.get("active", True)),
        min_value=parse_decimal(data.get("min_value")),
        max_value=parse_decimal(data.get("max_value")),
    )


def parse_configuration(data: dict[str, Any]) -> ApprovalConfiguration:
    """Parse one ``configurations`` entry (without its approvers)."""
    return ApprovalConfiguration(
        id=UUID(str(data["id"])) if data.get("id") else uuid4(),
        action_type=data["action_type"],
        name=data.get("name", data["action_type"]),
        description=data.get("description"),
        strategy=ApprovalStrategy(str(data["strategy"]).lower()),
        min_approvals=int(data.get("min_approvals", 1)),
        max_approvals=data.get("max_approvals"),
        status=ConfigurationStatus(data.get("status", "active")),
        requester_profile=data.get("requester_profile"),
        org_unit=data.get("org_unit"),
        min_value=parse_decimal(data.get("min_value")),
        max_value=parse_decimal(data.get("max_value")),
        time_limit_hours=int(data["time_limit_hours"]),
        reminder_hours=data.get("reminder_hours"),
        escalation_hours=data.get("escalation_hours"),
        max_escalation_level=int(data.get("max_escalation_level", 3)),
        expiry_warning_hours=tuple(int(h) for h in data.get("expiry_warning_hours", ())),
        escalation_recipients=tuple(str(u) for u in data.get("escalation_recipients", ())),
        allow_parallel_approval=bool(data.get("allow_parallel_approval", True)),
        allow_self_approval=bool(data.get("allow_self_approval", False)),
        require_justification_on_approve=bool(
            data.get("require_justification_on_approve", False)
        ),
        require_justification_on_reject=bool(
            data.get("require_justification_on_reject", False)
        ),
        business_hours=parse_business_hours(data.get("business_hours")),
        holidays=frozenset(parse_date(d) for d in data.get("holidays", ())),
        priority_rank=int(data.get("priority_rank", 0)),
        valid_from=parse_datetime(data["valid_from"]) if data.get("valid_from") else None,
        valid_until=parse_datetime(data["valid_until"]) if data.get("valid_until") else None,
        created_by=data.get("created_by"),
    )


def parse_rule_set(data: dict[str, Any]) -> RuleSet:
    entries = tuple(
        RuleSetEntry(
            configuration=parse_configuration(item),
            approvers=tuple(parse_approver(a) for a in item.get("approvers", ())),
        )
        for item in data.get("configurations", ())
    )
    return RuleSet(
        name=data.get("name", "unnamed"),
        entries=entries,
        checksum=compute_checksum(data),
    )


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    engine = data.get("engine", data)
    defaults = EngineSettings()
    return EngineSettings(
        database_url=engine.get("database_url", defaults.database_url),
        tick_interval_seconds=int(
            engine.get("tick_interval_seconds", defaults.tick_interval_seconds)
        ),
        max_optimistic_retries=int(
            engine.get("max_optimistic_retries", defaults.max_optimistic_retries)
        ),
        delegation_max_depth=int(
            engine.get("delegation_max_depth", defaults.delegation_max_depth)
        ),
        default_delegation_hours=int(
            engine.get("default_delegation_hours", defaults.default_delegation_hours)
        ),
        notification_queue_size=int(
            engine.get("notification_queue_size", defaults.notification_queue_size)
        ),
        notification_channel_hints=tuple(
            engine.get("notification_channel_hints", defaults.notification_channel_hints)
        ),
        admin_user_ids=frozenset(str(u) for u in engine.get("admin_user_ids", ())),
        inactive_user_ids=frozenset(str(u) for u in engine.get("inactive_user_ids", ())),
        log_level=str(engine.get("log_level", defaults.log_level)).upper(),
    )


def load_rule_set(path: Path) -> RuleSet:
    return parse_rule_set(load_yaml_file(Path(path)))


def load_engine_settings(path: Path) -> EngineSettings:
    return parse_engine_settings(load_yaml_file(Path(path)))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
