"""
Module: approval_engines.timers
Responsibility:
    Decide which timer actions are due for one PENDING request at ``now``:
    expiry, automatic escalation, reminder and expiry warnings.

Architecture position:
    Engines -- pure function over a request snapshot and its configuration.
    The timer scheduler applies the decision; nothing here writes.

Invariants enforced:
    - Idempotence: every decision is guarded by persisted counters and
      timestamps (escalation_count, last_reminder_at, expiry_warnings_sent),
      so evaluating the already-updated request at the same ``now`` yields
      no work.
    - Expiry is exclusive: once ``now >= expires_at`` nothing else fires.
    - Escalation policy: level ``k`` is due once ``k * escalation_hours`` of
      (business) time have elapsed since creation.  Every crossed level
      fires, capped by ``max_escalation_level``.
    - A reminder is not sent in a tick that escalates.
    - All hour comparisons use business time when the configuration has a
      business-hours window or holidays.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from approval_engines.business_time import BusinessCalendar, business_elapsed
from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import ApprovalConfiguration, ApprovalRequest


@dataclass(frozen=True)
class TimerDecision:
    """Timer work due for one request."""

    expire: bool = False
    escalation_levels: tuple[int, ...] = ()
    remind: bool = False
    expiry_warnings: tuple[int, ...] = ()

    @property
    def has_work(self) -> bool:
        return (
            self.expire
            or bool(self.escalation_levels)
            or self.remind
            or bool(self.expiry_warnings)
        )


NO_WORK = TimerDecision()


def due_escalation_levels(
    request: ApprovalRequest,
    configuration: ApprovalConfiguration,
    calendar: BusinessCalendar,
    now: datetime,
) -> tuple[int, ...]:
    if not configuration.escalation_hours:
        return ()
    cap = configuration.max_escalation_level
    if request.escalation_count >= cap:
        return ()
    elapsed = business_elapsed(calendar, request.created_at, now)
    due = min(elapsed // timedelta(hours=configuration.escalation_hours), cap)
    return tuple(range(request.escalation_count + 1, due + 1))


def reminder_due(
    request: ApprovalRequest,
    configuration: ApprovalConfiguration,
    calendar: BusinessCalendar,
    now: datetime,
) -> bool:
    if not configuration.reminder_hours:
        return False
    since = request.last_reminder_at or request.created_at
    elapsed = business_elapsed(calendar, since, now)
    return elapsed >= timedelta(hours=configuration.reminder_hours)


def due_expiry_warnings(
    request: ApprovalRequest,
    configuration: ApprovalConfiguration,
    calendar: BusinessCalendar,
    now: datetime,
) -> tuple[int, ...]:
    """Thresholds (hours before expiry) crossed but not yet warned about."""
    thresholds = sorted(set(configuration.expiry_warning_hours), reverse=True)
    if not thresholds:
        return ()
    remaining = business_elapsed(calendar, now, request.expires_at)
    crossed = sum(1 for h in thresholds if remaining <= timedelta(hours=h))
    return tuple(thresholds[request.expiry_warnings_sent:crossed])


@traced_engine("timers", "1.0", fingerprint_fields=("request", "now"))
def evaluate_timers(
    *,
    request: ApprovalRequest,
    configuration: ApprovalConfiguration,
    now: datetime,
) -> TimerDecision:
    """Timer work due for ``request`` at ``now``."""
    if request.is_terminal:
        return NO_WORK
    if now >= request.expires_at:
        return TimerDecision(expire=True)

    calendar = BusinessCalendar.from_configuration(configuration)
    levels = due_escalation_levels(request, configuration, calendar, now)
    remind = not levels and reminder_due(request, configuration, calendar, now)
    warnings = due_expiry_warnings(request, configuration, calendar, now)
    return TimerDecision(
        escalation_levels=levels,
        remind=remind,
        expiry_warnings=warnings,
    )
