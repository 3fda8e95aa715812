"""
approval_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the only way to obtain engine settings and approval rule sets.
    No other component reads configuration files.  Rule sets are validated
    before they are returned.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``approval_kernel``; the
    kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``InvalidConfigurationError`` -- a rule set failed validation.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import load_engine_settings, load_rule_set
from approval_config.schema import ApproverDef, EngineSettings, RuleSet, RuleSetEntry
from approval_config.validator import RuleSetValidationResult, validate_rule_set
from approval_kernel.exceptions import InvalidConfigurationError
from approval_kernel.logging_config import get_logger

logger = get_logger("config")

SETS_DIR = Path(__file__).parent / "sets"
DEFAULT_SETTINGS_PATH = SETS_DIR / "engine.yaml"


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """Load engine settings (default: the packaged ``sets/engine.yaml``)."""
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = load_engine_settings(settings_path)
    logger.info(
        "engine_settings_loaded",
        extra={
            "path": str(settings_path),
            "tick_interval_seconds": settings.tick_interval_seconds,
            "max_optimistic_retries": settings.max_optimistic_retries,
        },
    )
    return settings


def get_rule_set(path: Path | str) -> RuleSet:
    """Load and validate a rule set; raise on validation errors."""
    rule_set = load_rule_set(Path(path))
    result = validate_rule_set(rule_set)
    for warning in result.warnings:
        logger.warning("rule_set_warning", extra={"rule_set": rule_set.name, "detail": warning})
    if not result.is_valid:
        raise InvalidConfigurationError(rule_set.name, result.errors)
    logger.info(
        "rule_set_loaded",
        extra={
            "rule_set": rule_set.name,
            "configurations": len(rule_set.entries),
            "checksum": rule_set.checksum,
        },
    )
    return rule_set


__all__ = [
    "ApproverDef",
    "DEFAULT_SETTINGS_PATH",
    "EngineSettings",
    "RuleSet",
    "RuleSetEntry",
    "RuleSetValidationResult",
    "get_engine_settings",
    "get_rule_set",
    "validate_rule_set",
]
