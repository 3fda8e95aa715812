"""
ApprovalEngine -- DI container for the approval workflow engine.

Contract:
    Builds the database engine, session factory, notification dispatcher,
    workflow service and timer scheduler from ``EngineSettings``, and seeds
    rule sets loaded through ``approval_config``.  Single place where all
    engine dependencies are composed.

Architecture: approval_batch (top-level).  Nothing in approval_kernel or
    approval_engines imports from here; this is where configuration meets
    the kernel.

Invariants enforced:
    - Clock injection: every component receives the same Clock.
    - Rule sets are validated before anything is written, and seeding is
      idempotent per (action type, configuration name).
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from approval_config import EngineSettings, RuleSet, get_engine_settings, get_rule_set
from approval_kernel.db.engine import build_engine, create_tables, session_scope
from approval_kernel.domain.approval import (
    ApprovalConfiguration,
    Approver,
    StaticUserDirectory,
    UserDirectory,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import get_logger
from approval_kernel.repositories import SqlConfigurationRepository
from approval_kernel.services.notification import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
)
from approval_kernel.services.rule_store import RuleStore
from approval_kernel.services.workflow_service import ApprovalWorkflowService

from approval_batch.scheduler import ApprovalTimerScheduler

logger = get_logger("batch.orchestrator")


class ApprovalEngine:
    """Composed approval engine.

    Contract:
        - ``from_settings()`` factory creates a fully wired engine.
        - ``workflow`` is the public API for callers.
        - ``load_rule_set()`` seeds configurations from YAML.
        - ``start()`` / ``stop()`` run the dispatcher and scheduler threads.

    Non-goals:
        - Does NOT start background threads automatically -- caller decides.
    """

    def __init__(
        self,
        settings: EngineSettings,
        db_engine: Engine,
        session_factory: sessionmaker[Session],
        workflow: ApprovalWorkflowService,
        dispatcher: NotificationDispatcher,
        scheduler: ApprovalTimerScheduler,
        clock: Clock,
    ) -> None:
        self._settings = settings
        self._db_engine = db_engine
        self._session_factory = session_factory
        self._workflow = workflow
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._clock = clock

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        sink: NotificationSink | None = None,
        user_directory: UserDirectory | None = None,
        create_schema: bool = True,
    ) -> ApprovalEngine:
        """Create a fully wired engine.

        Args:
            settings: Engine settings; defaults to the packaged engine.yaml.
            clock: Optional clock for deterministic testing.
            sink: Notification sink; defaults to the structured log.
            user_directory: Defaults to the admin/inactive sets in settings.
            create_schema: Create missing tables on startup.
        """
        settings = settings or get_engine_settings()
        effective_clock = clock or SystemClock()

        db_engine = build_engine(settings.database_url)
        if create_schema:
            create_tables(db_engine)
        session_factory = sessionmaker(bind=db_engine, expire_on_commit=False)

        dispatcher = NotificationDispatcher(
            sink or LoggingNotificationSink(),
            max_queue_size=settings.notification_queue_size,
        )
        workflow = ApprovalWorkflowService(
            session_factory,
            clock=effective_clock,
            dispatcher=dispatcher,
            user_directory=user_directory or StaticUserDirectory(
                admin_user_ids=settings.admin_user_ids,
                inactive_user_ids=settings.inactive_user_ids,
            ),
            max_optimistic_retries=settings.max_optimistic_retries,
            delegation_max_depth=settings.delegation_max_depth,
            default_delegation_hours=settings.default_delegation_hours,
            channel_hints=settings.notification_channel_hints,
        )
        scheduler = ApprovalTimerScheduler(
            workflow,
            clock=effective_clock,
            tick_interval_seconds=settings.tick_interval_seconds,
        )

        logger.info(
            "approval_engine_wired",
            extra={
                "dialect": db_engine.dialect.name,
                "tick_interval_seconds": settings.tick_interval_seconds,
            },
        )
        return cls(
            settings=settings,
            db_engine=db_engine,
            session_factory=session_factory,
            workflow=workflow,
            dispatcher=dispatcher,
            scheduler=scheduler,
            clock=effective_clock,
        )

    # -------------------------------------------------------------------------
    # Rule sets
    # -------------------------------------------------------------------------

    def load_rule_set(self, path: Path | str) -> list[ApprovalConfiguration]:
        """Validate a YAML rule set and seed its configurations.

        Entries whose action type and name already exist as an active
        configuration are skipped, so loading the same file twice is safe.
        Returns the configurations created by this call.
        """
        return self.seed_rule_set(get_rule_set(path))

    def seed_rule_set(self, rule_set: RuleSet) -> list[ApprovalConfiguration]:
        created: list[ApprovalConfiguration] = []
        with session_scope(self._session_factory) as session:
            repo = SqlConfigurationRepository(session)
            store = RuleStore(repo, self._clock)
            for entry in rule_set.entries:
                config = entry.configuration
                existing = {
                    c.name for c in repo.list_for_action(config.action_type)
                    if c.is_active
                }
                if config.name in existing:
                    logger.info(
                        "rule_set_entry_skipped",
                        extra={"rule_set": rule_set.name, "configuration": config.name},
                    )
                    continue
                approvers = [
                    Approver(
                        user_id=a.user_id,
                        configuration_id=config.id,
                        active=a.active,
                        weight=a.weight,
                        order=a.order,
                        min_value=a.min_value,
                        max_value=a.max_value,
                    )
                    for a in entry.approvers
                ]
                created.append(store.create_configuration(config, approvers))
        logger.info(
            "rule_set_seeded",
            extra={
                "rule_set": rule_set.name,
                "created": len(created),
                "checksum": rule_set.checksum,
            },
        )
        return created

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        self._dispatcher.start()
        self._scheduler.start()

    def stop(self, timeout: float = 30.0) -> None:
        self._scheduler.stop(timeout=timeout)
        self._dispatcher.stop(timeout=timeout)

    def dispose(self) -> None:
        self.stop()
        self._db_engine.dispose()

    def __enter__(self) -> ApprovalEngine:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def workflow(self) -> ApprovalWorkflowService:
        return self._workflow

    @property
    def scheduler(self) -> ApprovalTimerScheduler:
        return self._scheduler

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock
