"""
Post-commit notification tasks.

Bookings enqueue a task after they are committed; delivery happens later
and independently, so a notification outage never blocks or rolls back a
booking. Each task is retried on its own with exponential backoff.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

from tenacity import RetryCallState, Retrying, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


@dataclass
class NotificationTask:
    kind: str
    business_id: str
    booking_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class DrainReport:
    delivered: List[NotificationTask] = field(default_factory=list)
    failed: List[NotificationTask] = field(default_factory=list)


class NotificationQueue(Protocol):
    def enqueue(self, task: NotificationTask) -> None:
        """Accept a task for later delivery."""


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "Notification attempt %s failed (%s), retrying",
        retry_state.attempt_number,
        f"{type(exc).__name__}: {exc}" if exc else "unknown error",
    )


class InMemoryNotificationQueue:
    """Process-local queue; swap for a durable broker in production."""

    def __init__(self, max_attempts: int = 3, wait=None) -> None:
        self._pending: Deque[NotificationTask] = deque()
        self.dead_letters: List[NotificationTask] = []
        self._max_attempts = max_attempts
        self._wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=8)

    def enqueue(self, task: NotificationTask) -> None:
        self._pending.append(task)
        logger.debug("Queued %s notification for booking %s", task.kind, task.booking_id)

    def pending(self) -> List[NotificationTask]:
        return list(self._pending)

    def drain(self, sender: Callable[[NotificationTask], None], limit: Optional[int] = None) -> DrainReport:
        """
        Deliver queued tasks through ``sender``.

        A task that still fails after ``max_attempts`` moves to
        ``dead_letters``; the remaining tasks are still delivered.
        """
        report = DrainReport()
        count = 0

        while self._pending and (limit is None or count < limit):
            task = self._pending.popleft()
            count += 1

            retrying = Retrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._wait,
                before_sleep=_log_before_sleep,
                reraise=True,
            )
            try:
                retrying(sender, task)
            except Exception as exc:
                logger.warning(
                    "Giving up on %s notification %s for booking %s: %s",
                    task.kind,
                    task.id,
                    task.booking_id,
                    exc,
                )
                self.dead_letters.append(task)
                report.failed.append(task)
                continue

            report.delivered.append(task)

        return report


def log_notification(task: NotificationTask) -> None:
    """Sender that records the notification in the log; used by the CLI."""
    logger.info(
        "Notification %s: %s for booking %s of business %s",
        task.id,
        task.kind,
        task.booking_id,
        task.business_id,
    )
