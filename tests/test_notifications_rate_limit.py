"""
Tests for post-commit notifications and booking rate limiting.
"""

import logging

import pytest
from tenacity import wait_none

from widgetscheduler.domain.exceptions import RateLimitExceededError
from widgetscheduler.services.notifications import (
    InMemoryNotificationQueue,
    NotificationTask,
    log_notification,
)
from widgetscheduler.services.rate_limit import InMemoryRateLimiter, enforce


def _task(booking_id: str) -> NotificationTask:
    return NotificationTask(kind="appointment_booked", business_id="biz", booking_id=booking_id)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestNotificationQueue:
    """Tests for InMemoryNotificationQueue.drain."""

    def test_delivers_in_order(self):
        queue = InMemoryNotificationQueue(wait=wait_none())
        queue.enqueue(_task("b1"))
        queue.enqueue(_task("b2"))
        sent = []

        report = queue.drain(lambda task: sent.append(task.booking_id))

        assert sent == ["b1", "b2"]
        assert [task.booking_id for task in report.delivered] == ["b1", "b2"]
        assert queue.pending() == []

    def test_flaky_sender_is_retried(self):
        queue = InMemoryNotificationQueue(max_attempts=3, wait=wait_none())
        queue.enqueue(_task("b1"))
        attempts = []

        def sender(task):
            attempts.append(task.id)
            if len(attempts) < 3:
                raise ConnectionError("smtp down")

        report = queue.drain(sender)

        assert len(attempts) == 3
        assert len(report.delivered) == 1
        assert queue.dead_letters == []

    def test_failed_task_goes_to_dead_letters_and_others_continue(self):
        queue = InMemoryNotificationQueue(max_attempts=2, wait=wait_none())
        queue.enqueue(_task("broken"))
        queue.enqueue(_task("fine"))

        def sender(task):
            if task.booking_id == "broken":
                raise ConnectionError("mailbox full")

        report = queue.drain(sender)

        assert [task.booking_id for task in report.failed] == ["broken"]
        assert [task.booking_id for task in report.delivered] == ["fine"]
        assert [task.booking_id for task in queue.dead_letters] == ["broken"]

    def test_drain_limit(self):
        queue = InMemoryNotificationQueue(wait=wait_none())
        for booking_id in ("b1", "b2", "b3"):
            queue.enqueue(_task(booking_id))

        report = queue.drain(lambda task: None, limit=2)

        assert len(report.delivered) == 2
        assert [task.booking_id for task in queue.pending()] == ["b3"]


class TestRateLimiter:
    """Tests for InMemoryRateLimiter."""

    def test_limit_within_window(self):
        limiter = InMemoryRateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())

        assert [limiter.hit("k") for _ in range(4)] == [True, True, True, False]
        assert limiter.hit("other")

    def test_window_expires(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60, clock=clock)

        assert limiter.hit("k")
        assert not limiter.hit("k")
        clock.now = 60
        assert limiter.hit("k")

    def test_purge_expired(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(max_requests=1, window_seconds=10, clock=clock)
        limiter.hit("a")
        clock.now = 5
        limiter.hit("b")
        clock.now = 12

        assert limiter.purge_expired() == 1
        assert len(limiter) == 1

    def test_hits_drop_expired_windows(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(max_requests=5, window_seconds=60, clock=clock, purge_every=3)
        limiter.hit("jane@example.com")
        limiter.hit("bob@example.com")
        clock.now = 61

        limiter.hit("eve@example.com")

        assert len(limiter) == 1

    def test_live_windows_survive_periodic_purge(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(max_requests=2, window_seconds=60, clock=clock, purge_every=2)
        limiter.hit("k")
        limiter.hit("k")
        clock.now = 30

        assert not limiter.hit("k")
        assert len(limiter) == 1

    def test_enforce_raises(self):
        limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
        enforce(limiter, "booking:w1:jane@example.com")

        with pytest.raises(RateLimitExceededError) as exc_info:
            enforce(limiter, "booking:w1:jane@example.com", business_id="biz")

        assert exc_info.value.http_status == 429
        assert exc_info.value.context["key"] == "booking:w1:jane@example.com"


class TestLogNotification:
    """Tests for the logging sender used by the CLI."""

    def test_drain_through_log(self, caplog):
        queue = InMemoryNotificationQueue(wait=wait_none())
        queue.enqueue(_task("b1"))

        with caplog.at_level(logging.INFO, logger="widgetscheduler.services.notifications"):
            report = queue.drain(log_notification)

        assert len(report.delivered) == 1
        assert "appointment_booked for booking b1 of business biz" in caplog.text
