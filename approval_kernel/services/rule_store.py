"""
RuleStore -- approval configuration administration and selection.

Responsibility:
    Creates, deactivates and validates approval configurations and their
    approver bindings, and selects the configuration that governs a newly
    submitted action.

Architecture position:
    Kernel > Services -- imperative shell over ConfigurationRepository.
    Selection itself is the pure ``approval_engines.rule_selection``.

Invariants enforced:
    - A configuration is persisted only after structural and approver-count
      validation passes.
    - Configurations are soft-deactivated, never deleted.
    - Selection never falls back to implicit approval.

Failure modes:
    - InvalidConfigurationError on validation failure.
    - ConfigurationNotFoundError for unknown ids.
    - NoMatchingConfigurationError from select_configuration.

Audit relevance:
    Every create/deactivate/approver change is logged with the
    configuration id.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from approval_engines.rule_selection import select_configuration
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    Approver,
    ConfigurationStatus,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.validation import (
    validate_approver,
    validate_approvers,
    validate_configuration,
)
from approval_kernel.exceptions import (
    ConfigurationNotFoundError,
    InvalidConfigurationError,
    NoMatchingConfigurationError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.repositories.base import ConfigurationRepository

logger = get_logger("services.rule_store")


class RuleStore:
    """Configuration administration and selection.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        configurations: ConfigurationRepository,
        clock: Clock | None = None,
    ):
        self._configurations = configurations
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_configuration(
        self,
        configuration: ApprovalConfiguration,
        approvers: Sequence[Approver] = (),
    ) -> ApprovalConfiguration:
        """Validate and persist a configuration with its approvers."""
        if configuration.created_at is None:
            configuration = replace(configuration, created_at=self._clock.now())
        bound = [replace(a, configuration_id=configuration.id) for a in approvers]

        errors = validate_configuration(configuration)
        errors += validate_approvers(configuration, bound)
        if errors:
            raise InvalidConfigurationError(configuration.action_type, errors)

        stored = self._configurations.add(configuration)
        for approver in bound:
            self._configurations.add_approver(approver)

        logger.info(
            "approval_configuration_created",
            extra={
                "configuration_id": str(stored.id),
                "action_type": stored.action_type,
                "strategy": stored.strategy.value,
                "priority_rank": stored.priority_rank,
                "approvers": [a.user_id for a in bound],
            },
        )
        return stored

    def deactivate_configuration(self, configuration_id: UUID) -> ApprovalConfiguration:
        config = self._configurations.set_status(
            configuration_id, ConfigurationStatus.INACTIVE,
        )
        logger.info(
            "approval_configuration_deactivated",
            extra={"configuration_id": str(configuration_id)},
        )
        return config

    def activate_configuration(self, configuration_id: UUID) -> ApprovalConfiguration:
        config = self.get_configuration(configuration_id)
        errors = self.validate_configuration(configuration_id, include_inactive=True)
        if errors:
            raise InvalidConfigurationError(config.action_type, errors)
        config = self._configurations.set_status(
            configuration_id, ConfigurationStatus.ACTIVE,
        )
        logger.info(
            "approval_configuration_activated",
            extra={"configuration_id": str(configuration_id)},
        )
        return config

    def add_approver(
        self,
        configuration_id: UUID,
        user_id: str,
        order: int | None = None,
        weight: int = 1,
        min_value: Decimal | None = None,
        max_value: Decimal | None = None,
    ) -> Approver:
        config = self.get_configuration(configuration_id)
        approver = Approver(
            user_id=user_id,
            configuration_id=configuration_id,
            order=order,
            weight=weight,
            min_value=min_value,
            max_value=max_value,
        )
        errors = validate_approver(approver)
        if errors:
            raise InvalidConfigurationError(config.action_type, errors)
        approver = self._configurations.add_approver(approver)
        logger.info(
            "approver_added",
            extra={"configuration_id": str(configuration_id), "user_id": user_id},
        )
        return approver

    def deactivate_approver(self, configuration_id: UUID, user_id: str) -> Approver:
        approver = self._configurations.set_approver_active(
            configuration_id, user_id, False,
        )
        logger.info(
            "approver_deactivated",
            extra={"configuration_id": str(configuration_id), "user_id": user_id},
        )
        problems = self.validate_configuration(configuration_id)
        if problems:
            logger.warning(
                "approval_configuration_misconfigured",
                extra={"configuration_id": str(configuration_id), "problems": problems},
            )
        return approver

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_configuration(self, configuration_id: UUID) -> ApprovalConfiguration:
        config = self._configurations.get(configuration_id)
        if config is None:
            raise ConfigurationNotFoundError(configuration_id)
        return config

    def active_approvers(self, configuration_id: UUID) -> list[Approver]:
        return self._configurations.list_approvers(configuration_id, active_only=True)

    def validate_configuration(
        self,
        configuration_id: UUID,
        include_inactive: bool = False,
    ) -> list[str]:
        """Misconfiguration messages for a stored configuration.

        An inactive configuration governs nothing and reports no problems
        unless ``include_inactive`` is set.
        """
        config = self.get_configuration(configuration_id)
        if not config.is_active and not include_inactive:
            return []
        approvers = self._configurations.list_approvers(configuration_id, active_only=False)
        return validate_configuration(config) + validate_approvers(config, approvers)

    def select_configuration(
        self,
        action_type: str,
        requester_profile: str | None,
        org_unit: str | None,
        value: Decimal | None,
        now: datetime,
    ) -> ApprovalConfiguration:
        """Governing configuration for an action, or NoMatchingConfigurationError."""
        candidates = self._configurations.list_for_action(
            action_type, status=ConfigurationStatus.ACTIVE,
        )
        try:
            return select_configuration(
                candidates,
                action_type=action_type,
                requester_profile=requester_profile,
                org_unit=org_unit,
                value=value,
                now=now,
            )
        except NoMatchingConfigurationError:
            logger.warning(
                "approval_configuration_not_found",
                extra={
                    "action_type": action_type,
                    "requester_profile": requester_profile,
                    "org_unit": org_unit,
                    "value": value,
                },
            )
            raise
