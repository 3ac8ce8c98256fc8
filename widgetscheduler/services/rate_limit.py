"""
Keyed fixed-window rate limiting for the booking path.

The limiter is a capability the scheduler calls through. ``InMemoryRateLimiter``
keeps counters with explicit expiry; a shared store (Redis and the like)
implements the same ``RateLimiter`` protocol when several instances run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol

from ..domain.exceptions import RateLimitExceededError


class RateLimiter(Protocol):
    def hit(self, key: str) -> bool:
        """Count one request for ``key``; False when over the limit."""


@dataclass
class _Window:
    started_at: float
    count: int


class InMemoryRateLimiter:
    """
    Process-local limiter. Expired counters are dropped every ``purge_every``
    hits so one-off keys do not pile up.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        purge_every: int = 100,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.purge_every = purge_every
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._hits = 0

    def hit(self, key: str) -> bool:
        self._hits += 1
        if self._hits % self.purge_every == 0:
            self.purge_expired()

        now = self._clock()
        window = self._windows.get(key)

        if window is None or now - window.started_at >= self.window_seconds:
            self._windows[key] = _Window(started_at=now, count=1)
            return True

        window.count += 1
        return window.count <= self.max_requests

    def purge_expired(self) -> int:
        """Drop expired counters; returns how many were removed."""
        now = self._clock()
        expired = [
            key for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


def enforce(limiter: RateLimiter, key: str, **context) -> None:
    """Raise RateLimitExceededError when ``key`` is over its limit."""
    if not limiter.hit(key):
        raise RateLimitExceededError("Too many booking attempts, please try again later", key=key, **context)
