"""
ApprovalWorkflowService -- the public API of the approval engine.

Responsibility:
    Submits requests, records approver decisions, delegations and
    cancellations, runs the timer sweep, and serves the read side
    (request lookups, pending work lists, history, audit export and
    statistics).

Architecture position:
    Kernel > Services -- the imperative shell that composes RuleStore,
    DelegationService, DecisionRecorder and the pure engines.  Each public
    operation runs in its own transaction from ``session_factory``.

Invariants enforced:
    - Lifecycle: every status change is checked against
      ``REQUEST_TRANSITIONS``; terminal requests never change again.
    - Snapshot: ``required_approvals`` and ``eligible_approvers`` are fixed
      at submission; later configuration edits do not reach open requests.
    - One decision per approver: an approver's terminal decision is
      recorded at most once, whoever exercises it.
    - Self-approval is refused unless the configuration allows it.
    - Every state change appends a hash-chained DecisionEvent in the same
      transaction as the request update.
    - Optimistic concurrency: a conflicting write rolls the whole operation
      back and retries it on fresh state, up to ``max_optimistic_retries``.
    - Notifications are published only after commit.

Failure modes:
    - Typed errors from ``approval_kernel.exceptions``; nothing is
      persisted when an operation raises.
    - ConcurrentModificationError when retries are exhausted.

Audit relevance:
    All decisions, delegations, escalations, expiries and cancellations
    are reconstructable from the decision chain of each request.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from approval_engines.business_time import BusinessCalendar, add_business_hours
from approval_engines.delegation import DEFAULT_MAX_DEPTH
from approval_engines.metrics import ApprovalStatistics, compute_statistics
from approval_engines.rule_selection import covers_value
from approval_engines.strategy import (
    evaluate_request,
    minimum_approvers,
    required_approvals,
)
from approval_engines.timers import TimerDecision, evaluate_timers
from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval import (
    APPROVER_ACTIONS,
    TERMINAL_DECISIONS,
    ApprovalConfiguration,
    ApprovalRequest,
    AuditExport,
    DecisionAction,
    DecisionEvent,
    Delegation,
    Notification,
    NotificationKind,
    RequestStatus,
    StaticUserDirectory,
    TickReport,
    UserDirectory,
    can_transition,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    ApproverNotEligibleError,
    CancellationNotAllowedError,
    ConcurrentModificationError,
    ConfigurationNotFoundError,
    DelegationError,
    DuplicateDecisionError,
    EscalationLimitReachedError,
    InvalidDelegationError,
    InvalidStatusTransitionError,
    JustificationRequiredError,
    MisconfiguredApproversError,
    OptimisticLockError,
    RequestAlreadyResolvedError,
    RequestExpiredError,
    RequestNotFoundError,
    SelfApprovalForbiddenError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.repositories import Repositories
from approval_kernel.services.decision_recorder import (
    DecisionRecorder,
    compute_anchor_hash,
)
from approval_kernel.services.delegation_service import DelegationService
from approval_kernel.services.notification import (
    LoggingNotificationSink,
    NotificationDispatcher,
)
from approval_kernel.services.rule_store import RuleStore
from approval_kernel.services.sequence_service import SequenceService
from approval_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.workflow")

T = TypeVar("T")

Work = Callable[[Session, Repositories, list[Notification]], T]


class ApprovalWorkflowService:
    """Approval workflow operations over a session factory.

    Contract:
        Every public method is one unit of work: it commits on success and
        leaves no trace on failure.

    Non-goals:
        - Does NOT deliver notifications itself; the dispatcher does.
        - Does NOT run a background loop; ``ApprovalTimerScheduler`` calls
          ``tick()`` periodically.
    """

    ENTITY = "approval_request"

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        user_directory: UserDirectory | None = None,
        max_optimistic_retries: int = 3,
        delegation_max_depth: int = DEFAULT_MAX_DEPTH,
        default_delegation_hours: int = 24,
        channel_hints: tuple[str, ...] = ("email",),
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        if dispatcher is None:
            dispatcher = NotificationDispatcher(LoggingNotificationSink())
            dispatcher.start()
        self._dispatcher = dispatcher
        self._directory = user_directory or StaticUserDirectory()
        self._max_retries = max_optimistic_retries
        self._delegation_max_depth = delegation_max_depth
        self._default_delegation_hours = default_delegation_hours
        self._channel_hints = tuple(channel_hints)

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    # =====================================================================
    # Transaction plumbing
    # =====================================================================

    def _transact(self, operation: str, entity_id: Any, work: Work[T]) -> T:
        """Run ``work`` in a fresh transaction, retrying on write conflicts."""
        attempts = 0
        while True:
            attempts += 1
            outbox: list[Notification] = []
            try:
                with session_scope(self._session_factory) as session:
                    result = work(session, Repositories.for_session(session), outbox)
            except (OptimisticLockError, IntegrityError) as exc:
                if attempts > self._max_retries:
                    logger.error(
                        "concurrent_modification",
                        extra={
                            "operation": operation,
                            "entity_id": str(entity_id),
                            "attempts": attempts,
                        },
                    )
                    raise ConcurrentModificationError(
                        self.ENTITY, str(entity_id), attempts,
                    ) from exc
                logger.info(
                    "optimistic_retry",
                    extra={
                        "operation": operation,
                        "entity_id": str(entity_id),
                        "attempt": attempts,
                        "error": type(exc).__name__,
                    },
                )
                continue
            self._publish(outbox)
            return result

    def _read(self, work: Callable[[Repositories], T]) -> T:
        with session_scope(self._session_factory) as session:
            return work(Repositories.for_session(session))

    def _publish(self, outbox: list[Notification]) -> None:
        for notification in outbox:
            self._dispatcher.enqueue(notification)

    def _delegations(self, repos: Repositories) -> DelegationService:
        return DelegationService(
            repos.delegations,
            user_directory=self._directory,
            clock=self._clock,
            max_depth=self._delegation_max_depth,
            default_hours=self._default_delegation_hours,
            request_configuration=lambda request_id: self._request_configuration(
                repos, request_id,
            ),
        )

    @staticmethod
    def _request_configuration(repos: Repositories, request_id: UUID) -> UUID | None:
        request = repos.requests.get(request_id)
        return request.configuration_id if request is not None else None

    def _notification(
        self,
        request: ApprovalRequest,
        kind: NotificationKind,
        recipients: tuple[str, ...] | list[str],
        **payload: Any,
    ) -> Notification:
        return Notification(
            request_id=request.id,
            request_code=request.code,
            kind=kind,
            recipients=tuple(dict.fromkeys(recipients)),
            channel_hints=self._channel_hints,
            payload=payload,
        )

    @staticmethod
    def _load_request(repos: Repositories, request_id: UUID) -> ApprovalRequest:
        request = repos.requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    @staticmethod
    def _load_configuration(
        repos: Repositories, configuration_id: UUID,
    ) -> ApprovalConfiguration:
        config = repos.configurations.get(configuration_id)
        if config is None:
            raise ConfigurationNotFoundError(configuration_id)
        return config

    @staticmethod
    def _check_transition(request: ApprovalRequest, to_status: RequestStatus) -> None:
        if not can_transition(request.status, to_status):
            raise InvalidStatusTransitionError(
                request.id, request.status.value, to_status.value,
            )

    def _awaiting(
        self,
        request: ApprovalRequest,
        configuration: ApprovalConfiguration,
    ) -> tuple[str, ...]:
        """Approvers whose decision is currently being waited for."""
        undecided = request.undecided_approvers
        if not configuration.allow_parallel_approval:
            return undecided[:1]
        return undecided

    def _current_holders(
        self,
        delegation_service: DelegationService,
        request: ApprovalRequest,
        configuration: ApprovalConfiguration,
        now: datetime,
        delegations: list[Delegation],
    ) -> tuple[str, ...]:
        """Effective approvers to notify for ``request`` at ``now``."""
        holders: list[str] = []
        for approver_id in self._awaiting(request, configuration):
            try:
                holder = delegation_service.resolve(approver_id, now, request, delegations)
            except DelegationError:
                logger.warning(
                    "delegation_resolution_failed",
                    extra={"request_id": str(request.id), "approver_id": approver_id},
                    exc_info=True,
                )
                holder = approver_id
            holders.append(holder)
        return tuple(dict.fromkeys(holders))

    # =====================================================================
    # Submit
    # =====================================================================

    def submit(
        self,
        action_type: str,
        requester_id: str,
        payload: dict[str, Any] | None = None,
        value: Decimal | int | str | None = None,
        requester_profile: str | None = None,
        org_unit: str | None = None,
    ) -> ApprovalRequest:
        """Open a PENDING request governed by the best-matching configuration.

        Raises:
            NoMatchingConfigurationError: No active configuration applies.
            MisconfiguredApproversError: Too few eligible approvers remain
                after excluding the requester and approvers whose value
                limits do not cover ``value``.
        """
        amount = Decimal(str(value)) if value is not None else None
        # JSON-normalized so the anchor hash survives a storage round trip.
        body = json.loads(canonicalize_json(payload or {}))

        def work(session: Session, repos: Repositories, outbox: list[Notification]):
            now = self._clock.now()
            rules = RuleStore(repos.configurations, self._clock)
            config = rules.select_configuration(
                action_type, requester_profile, org_unit, amount, now,
            )

            approvers = rules.active_approvers(config.id)
            eligible = tuple(
                a.user_id for a in approvers
                if (config.allow_self_approval or a.user_id != requester_id)
                and covers_value(a, amount)
            )
            needed = minimum_approvers(config.strategy, config.min_approvals)
            if len(eligible) < needed:
                logger.error(
                    "approval_configuration_misconfigured",
                    extra={
                        "configuration_id": str(config.id),
                        "eligible": len(eligible),
                        "required": needed,
                    },
                )
                raise MisconfiguredApproversError(config.id, len(eligible), needed)

            calendar = BusinessCalendar.from_configuration(config)
            request = ApprovalRequest(
                id=uuid4(),
                code=SequenceService(session).next_request_code(now.year),
                configuration_id=config.id,
                action_type=action_type,
                status=RequestStatus.PENDING,
                required_approvals=required_approvals(
                    config.strategy, config.min_approvals, len(eligible),
                ),
                eligible_approvers=eligible,
                requester_id=requester_id,
                requester_profile=requester_profile,
                requester_org_unit=org_unit,
                value=amount,
                payload=body,
                created_at=now,
                expires_at=add_business_hours(calendar, now, config.time_limit_hours),
                updated_at=now,
            )
            request = replace(request, anchor_hash=compute_anchor_hash(request))
            stored = repos.requests.add(request)

            delegation_service = self._delegations(repos)
            holders = self._current_holders(
                delegation_service, stored, config, now,
                delegation_service.covering(now),
            )
            outbox.append(self._notification(
                stored, NotificationKind.SUBMITTED, holders,
                action_type=action_type,
                requester_id=requester_id,
                expires_at=stored.expires_at.isoformat(),
            ))

            logger.info(
                "approval_request_submitted",
                extra={
                    "request_id": str(stored.id),
                    "code": stored.code,
                    "configuration_id": str(config.id),
                    "strategy": config.strategy.value,
                    "eligible": list(eligible),
                    "required_approvals": stored.required_approvals,
                    "expires_at": stored.expires_at,
                },
            )
            return stored

        with LogContext.bind(actor_id=requester_id):
            return self._transact("submit", action_type, work)

    # =====================================================================
    # Decide
    # =====================================================================

    def _acting_as(
        self,
        delegation_service: DelegationService,
        request: ApprovalRequest,
        configuration: ApprovalConfiguration,
        acting_user_id: str,
        action: DecisionAction,
        now: datetime,
    ) -> str:
        """The eligible approver whose duty ``acting_user_id`` exercises."""
        delegations = delegation_service.covering(now)
        holders = [
            approver_id for approver_id in request.eligible_approvers
            if delegation_service.resolve(approver_id, now, request, delegations)
            == acting_user_id
        ]
        if not holders:
            reason = (
                "delegated_away"
                if acting_user_id in request.eligible_approvers
                else "not_an_approver"
            )
            raise ApproverNotEligibleError(request.id, acting_user_id, reason)

        undecided = [a for a in holders if a not in request.decided_approvers]
        if action in TERMINAL_DECISIONS or action == DecisionAction.DELEGATE:
            if not undecided:
                raise DuplicateDecisionError(request.id, holders[0])
            if action in TERMINAL_DECISIONS and not configuration.allow_parallel_approval:
                next_up = request.undecided_approvers[0]
                if next_up not in undecided:
                    raise ApproverNotEligibleError(
                        request.id, acting_user_id, "awaiting_prior_approver",
                    )
                return next_up
            return undecided[0]
        return undecided[0] if undecided else holders[0]

    def decide(
        self,
        request_id: UUID,
        acting_user_id: str,
        action: DecisionAction | str,
        justification: str | None = None,
        delegate_to: str | None = None,
    ) -> ApprovalRequest:
        """Record one approver action and re-evaluate the request.

        ``action`` is one of approve, reject, delegate, escalate or
        request_info.  Returns the request as committed.
        """
        action = DecisionAction(action)
        if action not in APPROVER_ACTIONS:
            raise ValueError(f"'{action.value}' is not an approver action")
        text = justification.strip() if justification else None

        def work(session: Session, repos: Repositories, outbox: list[Notification]):
            now = self._clock.now()
            request = self._load_request(repos, request_id)
            if request.is_terminal:
                raise RequestAlreadyResolvedError(request.id, request.status.value)
            if now >= request.expires_at:
                raise RequestExpiredError(request.id, request.expires_at)

            config = self._load_configuration(repos, request.configuration_id)
            if acting_user_id == request.requester_id and not config.allow_self_approval:
                raise SelfApprovalForbiddenError(request.id, acting_user_id)

            delegation_service = self._delegations(repos)
            approver_id = self._acting_as(
                delegation_service, request, config, acting_user_id, action, now,
            )

            needs_text = (
                (action == DecisionAction.APPROVE and config.require_justification_on_approve)
                or (action == DecisionAction.REJECT and config.require_justification_on_reject)
                or action == DecisionAction.REQUEST_INFO
            )
            if needs_text and not text:
                raise JustificationRequiredError(request.id, action.value)

            recorder = DecisionRecorder(repos.requests, repos.events)
            event = DecisionEvent(
                request_id=request.id,
                action=action,
                created_at=now,
                acting_user_id=acting_user_id,
                approver_id=approver_id,
                justification=text,
            )

            if action in TERMINAL_DECISIONS:
                return self._apply_terminal_decision(
                    repos, recorder, delegation_service, request, config,
                    event, now, outbox,
                )
            if action == DecisionAction.DELEGATE:
                return self._apply_delegate(
                    repos, recorder, delegation_service, request, event,
                    delegate_to, now, outbox,
                )
            if action == DecisionAction.ESCALATE:
                return self._apply_manual_escalation(
                    repos, recorder, delegation_service, request, config,
                    event, now, outbox,
                )
            saved = repos.requests.update(replace(request, updated_at=now))
            recorder.append(saved, event)
            outbox.append(self._notification(
                saved, NotificationKind.INFO_REQUESTED, (saved.requester_id,),
                asked_by=acting_user_id,
                question=text,
            ))
            logger.info(
                "approval_info_requested",
                extra={"request_id": str(saved.id), "approver_id": approver_id},
            )
            return saved

        with LogContext.bind(request_id=str(request_id), actor_id=acting_user_id):
            return self._transact("decide", request_id, work)

    def _apply_terminal_decision(
        self,
        repos: Repositories,
        recorder: DecisionRecorder,
        delegation_service: DelegationService,
        request: ApprovalRequest,
        config: ApprovalConfiguration,
        event: DecisionEvent,
        now: datetime,
        outbox: list[Notification],
    ) -> ApprovalRequest:
        approved = event.action == DecisionAction.APPROVE
        updated = replace(
            request,
            decided_approvers=request.decided_approvers + (event.approver_id,),
            approvals_received=request.approvals_received + (1 if approved else 0),
            rejections_received=request.rejections_received + (0 if approved else 1),
            first_approval_at=request.first_approval_at or (now if approved else None),
            updated_at=now,
        )
        status = evaluate_request(request=updated, configuration=config, now=now)
        self._check_transition(request, status)
        if status != RequestStatus.PENDING:
            updated = replace(updated, status=status, resolved_at=now)

        saved = repos.requests.update(updated)
        recorder.append(saved, event)

        logger.info(
            "approval_decision_recorded",
            extra={
                "request_id": str(saved.id),
                "approver_id": event.approver_id,
                "acting_user_id": event.acting_user_id,
                "action": event.action.value,
                "approvals": saved.approvals_received,
                "rejections": saved.rejections_received,
                "status": saved.status.value,
            },
        )

        if saved.is_terminal:
            logger.info(
                "approval_request_resolved",
                extra={"request_id": str(saved.id), "status": saved.status.value},
            )
            outbox.append(self._notification(
                saved, NotificationKind.RESOLVED,
                (saved.requester_id, *saved.eligible_approvers),
                status=saved.status.value,
            ))
        elif approved and not config.allow_parallel_approval:
            holders = self._current_holders(
                delegation_service, saved, config, now,
                delegation_service.covering(now),
            )
            outbox.append(self._notification(
                saved, NotificationKind.SUBMITTED, holders, reason="your_turn",
            ))
        return saved

    def _apply_delegate(
        self,
        repos: Repositories,
        recorder: DecisionRecorder,
        delegation_service: DelegationService,
        request: ApprovalRequest,
        event: DecisionEvent,
        delegate_to: str | None,
        now: datetime,
        outbox: list[Notification],
    ) -> ApprovalRequest:
        if not delegate_to:
            raise InvalidDelegationError(event.acting_user_id, "delegate_to is required")
        delegation_service.create(Delegation(
            from_user_id=event.acting_user_id,
            to_user_id=delegate_to,
            valid_from=now,
            valid_until=request.expires_at,
            reason=event.justification,
            request_id=request.id,
            created_at=now,
            created_by=event.acting_user_id,
        ))
        saved = repos.requests.update(replace(request, updated_at=now))
        recorder.append(saved, replace(event, delegated_to_user_id=delegate_to))
        outbox.append(self._notification(
            saved, NotificationKind.SUBMITTED, (delegate_to,),
            reason="delegated",
            delegated_by=event.acting_user_id,
        ))
        return saved

    def _apply_manual_escalation(
        self,
        repos: Repositories,
        recorder: DecisionRecorder,
        delegation_service: DelegationService,
        request: ApprovalRequest,
        config: ApprovalConfiguration,
        event: DecisionEvent,
        now: datetime,
        outbox: list[Notification],
    ) -> ApprovalRequest:
        if request.escalation_count >= config.max_escalation_level:
            raise EscalationLimitReachedError(request.id, config.max_escalation_level)
        level = request.escalation_count + 1
        saved = repos.requests.update(replace(
            request,
            escalation_count=level,
            last_escalation_at=now,
            last_reminder_at=now,
            updated_at=now,
        ))
        recorder.append(saved, replace(event, escalation_level=level))
        recipients = config.escalation_recipients or self._current_holders(
            delegation_service, saved, config, now, delegation_service.covering(now),
        )
        outbox.append(self._notification(
            saved, NotificationKind.ESCALATION, recipients,
            level=level,
            escalated_by=event.acting_user_id,
        ))
        logger.warning(
            "approval_request_escalated",
            extra={"request_id": str(saved.id), "level": level, "automatic": False},
        )
        return saved

    # =====================================================================
    # Delegation and cancellation
    # =====================================================================

    def delegate(
        self,
        from_user_id: str,
        to_user_id: str,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        reason: str | None = None,
        request_id: UUID | None = None,
        configuration_id: UUID | None = None,
        created_by: str | None = None,
    ) -> Delegation:
        """Record a delegation of ``from_user_id``'s approval duty.

        Scope is one request, one configuration, or global when neither id
        is given.  The window defaults to ``default_delegation_hours`` from
        ``valid_from`` (itself defaulting to now).
        """
        if request_id is not None and configuration_id is not None:
            raise InvalidDelegationError(
                from_user_id, "scope is either a request or a configuration",
            )

        def work(session: Session, repos: Repositories, outbox: list[Notification]):
            service = self._delegations(repos)
            start, default_end = service.default_window(valid_from)
            request = None
            if request_id is not None:
                request = self._load_request(repos, request_id)
                if request.is_terminal:
                    raise RequestAlreadyResolvedError(request.id, request.status.value)
            if configuration_id is not None:
                self._load_configuration(repos, configuration_id)

            created = service.create(Delegation(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                valid_from=start,
                valid_until=valid_until or default_end,
                reason=reason,
                request_id=request_id,
                configuration_id=configuration_id,
                created_by=created_by or from_user_id,
            ))
            if request is not None:
                outbox.append(self._notification(
                    request, NotificationKind.SUBMITTED, (to_user_id,),
                    reason="delegated",
                    delegated_by=from_user_id,
                ))
            return created

        with LogContext.bind(actor_id=created_by or from_user_id):
            return self._transact("delegate", from_user_id, work)

    def revoke_delegation(self, delegation_id: UUID, acting_user_id: str) -> Delegation:
        def work(session: Session, repos: Repositories, outbox: list[Notification]):
            service = self._delegations(repos)
            delegation = service.get(delegation_id)
            allowed = acting_user_id in (delegation.from_user_id, delegation.created_by)
            if not allowed and not self._directory.is_admin(acting_user_id):
                raise InvalidDelegationError(acting_user_id, "not allowed to revoke")
            return service.revoke(delegation_id, acting_user_id)

        with LogContext.bind(actor_id=acting_user_id):
            return self._transact("revoke_delegation", delegation_id, work)

    def cancel(self, request_id: UUID, acting_user_id: str, reason: str) -> ApprovalRequest:
        """Withdraw a PENDING request (requester or administrator only)."""

        def work(session: Session, repos: Repositories, outbox: list[Notification]):
            now = self._clock.now()
            request = self._load_request(repos, request_id)
            if request.is_terminal:
                raise RequestAlreadyResolvedError(request.id, request.status.value)
            if (
                acting_user_id != request.requester_id
                and not self._directory.is_admin(acting_user_id)
            ):
                raise CancellationNotAllowedError(request.id, acting_user_id)
            if now >= request.expires_at:
                raise RequestExpiredError(request.id, request.expires_at)
            self._check_transition(request, RequestStatus.CANCELLED)

            config = self._load_configuration(repos, request.configuration_id)
            delegation_service = self._delegations(repos)
            holders = self._current_holders(
                delegation_service, request, config, now,
                delegation_service.covering(now),
            )

            saved = repos.requests.update(replace(
                request,
                status=RequestStatus.CANCELLED,
                resolved_at=now,
                updated_at=now,
            ))
            DecisionRecorder(repos.requests, repos.events).append(saved, DecisionEvent(
                request_id=saved.id,
                action=DecisionAction.CANCEL,
                created_at=now,
                acting_user_id=acting_user_id,
                justification=reason,
            ))
            outbox.append(self._notification(
                saved, NotificationKind.RESOLVED, (saved.requester_id, *holders),
                status=saved.status.value,
                cancelled_by=acting_user_id,
            ))
            logger.info(
                "approval_request_cancelled",
                extra={"request_id": str(saved.id), "cancelled_by": acting_user_id},
            )
            return saved

        with LogContext.bind(request_id=str(request_id), actor_id=acting_user_id):
            return self._transact("cancel", request_id, work)

    # =====================================================================
    # Timer sweep
    # =====================================================================

    def tick(
        self,
        now: datetime | None = None,
        stop_event: threading.Event | None = None,
    ) -> TickReport:
        """Apply expiry, escalation, reminders and expiry warnings.

        Each request is processed in its own transaction, so one failure
        does not hold back the others.  Repeating a tick at the same
        instant finds nothing left to do.
        """
        now = now or self._clock.now()
        tick_id = uuid4().hex[:12]

        with LogContext.bind(tick_id=tick_id):
            ids = self._read(lambda repos: list(dict.fromkeys(
                [r.id for r in repos.requests.list_due(now)]
                + [r.id for r in repos.requests.list_pending()]
            )))

            scanned = expired = escalated = reminded = warned = failed = 0
            interrupted = False
            for request_id in ids:
                if stop_event is not None and stop_event.is_set():
                    interrupted = True
                    break
                scanned += 1
                try:
                    with LogContext.bind(request_id=str(request_id)):
                        decision = self._transact(
                            "tick", request_id,
                            lambda session, repos, outbox, rid=request_id:
                                self._apply_timers(repos, rid, now, outbox),
                        )
                except Exception:
                    failed += 1
                    logger.exception(
                        "timer_request_failed",
                        extra={"request_id": str(request_id)},
                    )
                    continue
                expired += int(decision.expire)
                escalated += len(decision.escalation_levels)
                reminded += int(decision.remind)
                warned += len(decision.expiry_warnings)

            report = TickReport(
                now=now,
                scanned=scanned,
                expired=expired,
                escalated=escalated,
                reminded=reminded,
                warned=warned,
                failed=failed,
                interrupted=interrupted,
            )
            logger.info(
                "timer_sweep_completed",
                extra={
                    "now": now,
                    "scanned": scanned,
                    "expired": expired,
                    "escalated": escalated,
                    "reminded": reminded,
                    "warned": warned,
                    "failed": failed,
                    "interrupted": interrupted,
                },
            )
            return report

    def _apply_timers(
        self,
        repos: Repositories,
        request_id: UUID,
        now: datetime,
        outbox: list[Notification],
    ) -> TimerDecision:
        request = self._load_request(repos, request_id)
        config = self._load_configuration(repos, request.configuration_id)
        decision = evaluate_timers(request=request, configuration=config, now=now)
        if not decision.has_work:
            return decision

        recorder = DecisionRecorder(repos.requests, repos.events)
        delegation_service = self._delegations(repos)
        delegations = delegation_service.covering(now)
        holders = self._current_holders(delegation_service, request, config, now, delegations)

        if decision.expire:
            self._check_transition(request, RequestStatus.EXPIRED)
            saved = repos.requests.update(replace(
                request,
                status=RequestStatus.EXPIRED,
                resolved_at=now,
                updated_at=now,
            ))
            recorder.append(saved, DecisionEvent(
                request_id=saved.id,
                action=DecisionAction.EXPIRE,
                created_at=now,
                is_automatic=True,
            ))
            outbox.append(self._notification(
                saved, NotificationKind.RESOLVED, (saved.requester_id, *holders),
                status=saved.status.value,
            ))
            logger.warning(
                "approval_request_expired",
                extra={"request_id": str(saved.id), "expires_at": saved.expires_at},
            )
            return decision

        updated = replace(request, updated_at=now)
        if decision.escalation_levels:
            updated = replace(
                updated,
                escalation_count=decision.escalation_levels[-1],
                last_escalation_at=now,
                last_reminder_at=now,
            )
        if decision.remind:
            updated = replace(
                updated,
                reminder_count=request.reminder_count + 1,
                last_reminder_at=now,
            )
        if decision.expiry_warnings:
            updated = replace(
                updated,
                expiry_warnings_sent=request.expiry_warnings_sent
                + len(decision.expiry_warnings),
            )
        saved = repos.requests.update(updated)

        for level in decision.escalation_levels:
            recorder.append(saved, DecisionEvent(
                request_id=saved.id,
                action=DecisionAction.ESCALATE,
                created_at=now,
                escalation_level=level,
                is_automatic=True,
            ))
            logger.warning(
                "approval_request_escalated",
                extra={"request_id": str(saved.id), "level": level, "automatic": True},
            )
        if decision.escalation_levels:
            outbox.append(self._notification(
                saved, NotificationKind.ESCALATION,
                config.escalation_recipients or holders,
                level=decision.escalation_levels[-1],
                levels=list(decision.escalation_levels),
            ))
        if decision.remind:
            outbox.append(self._notification(
                saved, NotificationKind.REMINDER, holders,
                reminder_count=saved.reminder_count,
            ))
            logger.info(
                "approval_reminder_sent",
                extra={"request_id": str(saved.id), "reminder_count": saved.reminder_count},
            )
        for hours in decision.expiry_warnings:
            outbox.append(self._notification(
                saved, NotificationKind.EXPIRY_WARNING, holders,
                hours_before_expiry=hours,
                expires_at=saved.expires_at.isoformat(),
            ))
        return decision

    # =====================================================================
    # Read side
    # =====================================================================

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        return self._read(lambda repos: self._load_request(repos, request_id))

    def get_request_by_code(self, code: str) -> ApprovalRequest:
        def work(repos: Repositories) -> ApprovalRequest:
            request = repos.requests.get_by_code(code)
            if request is None:
                raise RequestNotFoundError(code)
            return request

        return self._read(work)

    def history(self, request_id: UUID) -> list[DecisionEvent]:
        def work(repos: Repositories) -> list[DecisionEvent]:
            self._load_request(repos, request_id)
            return repos.events.list_for_request(request_id)

        return self._read(work)

    def list_requests_by_requester(
        self,
        requester_id: str,
        status: RequestStatus | None = None,
    ) -> list[ApprovalRequest]:
        return self._read(
            lambda repos: repos.requests.list_by_requester(requester_id, status),
        )

    def list_pending_for_approver(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> list[ApprovalRequest]:
        """Open requests currently waiting on ``user_id``, directly or by delegation."""
        now = now or self._clock.now()

        def work(repos: Repositories) -> list[ApprovalRequest]:
            service = self._delegations(repos)
            delegations = service.covering(now)
            configs: dict[UUID, ApprovalConfiguration] = {}
            result = []
            for request in repos.requests.list_pending():
                if now >= request.expires_at:
                    continue
                config = configs.get(request.configuration_id)
                if config is None:
                    config = self._load_configuration(repos, request.configuration_id)
                    configs[config.id] = config
                if user_id in self._current_holders(
                    service, request, config, now, delegations,
                ):
                    result.append(request)
            return result

        return self._read(work)

    def verify_chain(self, request_id: UUID) -> bool:
        return self._read(
            lambda repos: DecisionRecorder(repos.requests, repos.events).verify_chain(request_id),
        )

    def export_audit(self, request_id: UUID) -> AuditExport:
        return self._read(
            lambda repos: DecisionRecorder(repos.requests, repos.events).export_audit(request_id),
        )

    def statistics(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        org_unit: str | None = None,
    ) -> ApprovalStatistics:
        def load(repos: Repositories):
            requests = repos.requests.list_created_between(since, until, org_unit)
            return requests, repos.events.list_for_requests([r.id for r in requests])

        requests, events = self._read(load)
        return compute_statistics(requests, events)
