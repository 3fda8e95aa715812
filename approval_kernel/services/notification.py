"""
Notification dispatch -- asynchronous delivery of notification instructions.

Responsibility:
    Takes ``Notification`` instructions produced by committed workflow
    transactions and hands them to a ``NotificationSink`` from a background
    worker, so delivery never blocks or rolls back a state change.

Architecture position:
    Kernel > Services.  The sink is the outbound port; transports (email,
    chat, push) live behind it, outside the engine.

Invariants enforced:
    - Notifications are enqueued only after the producing transaction has
      committed.
    - The queue is bounded; overflow drops the notification with a WARNING
      instead of blocking the caller.
    - A failing sink is logged and never propagates into the workflow.
"""

from __future__ import annotations

import queue
import threading
from typing import Protocol

from approval_kernel.domain.approval import Notification
from approval_kernel.logging_config import get_logger

logger = get_logger("services.notification")


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None: ...


class InMemoryNotificationSink:
    """Collects notifications in a list (tests, dry runs)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        with self._lock:
            self._sent.append(notification)

    @property
    def sent(self) -> list[Notification]:
        with self._lock:
            return list(self._sent)

    def for_recipient(self, user_id: str) -> list[Notification]:
        return [n for n in self.sent if user_id in n.recipients]

    def clear(self) -> None:
        with self._lock:
            self._sent.clear()


class LoggingNotificationSink:
    """Writes each notification to the structured log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "notification_sent",
            extra={
                "request_id": str(notification.request_id),
                "request_code": notification.request_code,
                "kind": notification.kind.value,
                "recipients": list(notification.recipients),
                "channel_hints": list(notification.channel_hints),
            },
        )


class NotificationDispatcher:
    """Bounded queue plus a daemon worker in front of a sink.

    Without ``start()`` nothing is delivered until ``drain()`` is called,
    which tests use for synchronous delivery.
    """

    def __init__(self, sink: NotificationSink, max_queue_size: int = 1000):
        self._sink = sink
        self._queue: queue.Queue[Notification] = queue.Queue(maxsize=max_queue_size)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def sink(self) -> NotificationSink:
        return self._sink

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def enqueue(self, notification: Notification) -> bool:
        try:
            self._queue.put_nowait(notification)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1
            logger.warning(
                "notification_dropped",
                extra={
                    "request_id": str(notification.request_id),
                    "kind": notification.kind.value,
                    "queue_size": self._queue.maxsize,
                },
            )
            return False
        return True

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="approval-notifications",
            daemon=True,
        )
        self._thread.start()
        logger.info("notification_dispatcher_started")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the worker, then deliver whatever is still queued."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        delivered = self.drain()
        logger.info("notification_dispatcher_stopped", extra={"drained": delivered})

    def drain(self) -> int:
        """Deliver every queued notification on the calling thread."""
        delivered = 0
        while True:
            try:
                notification = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            self._deliver(notification)
            delivered += 1

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                notification = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self._deliver(notification)

    def _deliver(self, notification: Notification) -> None:
        try:
            self._sink.send(notification)
        except Exception:
            logger.exception(
                "notification_failed",
                extra={
                    "request_id": str(notification.request_id),
                    "kind": notification.kind.value,
                    "recipients": list(notification.recipients),
                },
            )
