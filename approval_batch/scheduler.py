"""
ApprovalTimerScheduler -- in-process polling loop for approval timers.

Contract:
    Calls ``ApprovalWorkflowService.tick()`` every ``tick_interval_seconds``
    so expiry, escalation, reminders and expiry warnings are applied even
    when nobody touches a request.

Architecture: approval_batch.  Uses the workflow service for the sweep;
    the per-request timer decision is the pure ``evaluate_timers``.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Graceful shutdown: ``stop()`` is honoured between requests, so the
      request in progress finishes its transaction.
    - Sweeps are idempotent; an interrupted sweep is completed by the next.
"""

from __future__ import annotations

import threading

from approval_kernel.domain.approval import TickReport
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import get_logger
from approval_kernel.services.workflow_service import ApprovalWorkflowService

logger = get_logger("batch.scheduler")


class ApprovalTimerScheduler:
    """Background thread driving the timer sweep.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Running several
          instances is safe because every write is optimistic, just wasteful.
    """

    def __init__(
        self,
        workflow: ApprovalWorkflowService,
        clock: Clock | None = None,
        tick_interval_seconds: int = 300,
    ):
        self._workflow = workflow
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_report: TickReport | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> TickReport | None:
        """Run one sweep at the clock's current time (public for testing)."""
        try:
            report = self._workflow.tick(
                now=self._clock.now(), stop_event=self._stop_event,
            )
        except Exception:
            logger.exception("scheduler_tick_failed")
            return None
        self._last_report = report
        return report

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="approval-timer-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current sweep to wind down."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_report(self) -> TickReport | None:
        return self._last_report

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)
