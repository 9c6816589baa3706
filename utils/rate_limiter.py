"""Rate limiter module for provider API calls.

The limiter uses a sliding window per source by storing monotonic timestamps in
a deque, pruning entries older than the rolling window on each check/record,
and enforcing the cap against the remaining timestamps. Each source owns its own
limiter and lock so independent providers never contend with each other.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import TypeAlias

from prometheus_client import Counter
from pydantic import BaseModel, Field

Timestamp: TypeAlias = float
EventDeque: TypeAlias = deque[Timestamp]

# Floor for computed sleeps so waiters never busy-spin on a near-zero wait.
MIN_SLEEP_SECONDS = 0.1

RATE_LIMIT_WAITS = Counter(
    "rate_limit_waits_total", "Acquisitions that had to wait for a slot.", ("source",)
)
RATE_LIMIT_TIMEOUTS = Counter(
    "rate_limit_timeouts_total", "Acquisitions that gave up waiting.", ("source",)
)

logger = logging.getLogger(__name__)


class RateLimiterStatus(BaseModel):
    """Point-in-time view of one source's request budget."""

    source: str = Field(..., description="Logical source identifier")
    limit: int = Field(..., description="Maximum requests per window")
    window_seconds: float = Field(..., description="Sliding window length in seconds")
    current: int = Field(..., description="Requests recorded inside the window")
    remaining: int = Field(..., description="Requests still allowed in the window")


class RateLimiter:
    """Sliding window rate limiter for a single source.

    The limiter keeps a deque of monotonic timestamps and prunes entries older
    than the rolling window before comparing the remaining count with the cap.
    Prune, check and record happen under one lock so two callers can never
    both observe spare budget and both record.
    """

    _limit: int
    _window_seconds: float
    _events: EventDeque

    def __init__(
        self,
        limit: int,
        window_seconds: float = 60.0,
        *,
        source: str = "",
        clock: Callable[[], float] | None = None,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._limit = limit
        self._window_seconds = window_seconds
        self._source = source
        self._clock = clock
        self._events = deque()
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def reconfigure(self, limit: int, window_seconds: float) -> None:
        """Change the budget in place, keeping timestamps still inside the window."""
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        with self._lock:
            self._limit = limit
            self._window_seconds = window_seconds
            self._prune_events(self._now())

    def _now(self) -> Timestamp:
        if self._clock is not None:
            return self._clock()
        return time.monotonic()

    def _prune_events(self, now: Timestamp) -> None:
        """Drop timestamps that have aged out of the current window.

        The deque is ordered by arrival time, so pruning stops as soon as the
        first remaining timestamp falls within the active window.
        """
        window_start = now - self._window_seconds
        while self._events and self._events[0] <= window_start:
            self._events.popleft()

    def _wait_time_locked(self, now: Timestamp) -> float:
        if len(self._events) < self._limit:
            return 0.0
        return max(0.0, self._events[0] + self._window_seconds - now)

    def try_acquire(self) -> bool:
        """Record a request and return True when the window has spare budget."""
        with self._lock:
            now = self._now()
            self._prune_events(now)
            if len(self._events) >= self._limit:
                return False
            self._events.append(now)
            return True

    def can_proceed(self) -> bool:
        """Return True when a request would be allowed, without recording it."""
        with self._lock:
            self._prune_events(self._now())
            return len(self._events) < self._limit

    def wait_time(self) -> float:
        """Return seconds until the oldest timestamp leaves the window (0 if free)."""
        with self._lock:
            now = self._now()
            self._prune_events(now)
            return self._wait_time_locked(now)

    def _next_sleep(self, deadline: float) -> float | None:
        """Return how long to sleep before re-checking, or None when out of budget."""
        with self._lock:
            now = self._now()
            self._prune_events(now)
            wait = self._wait_time_locked(now)
        budget = deadline - now
        if budget <= 0:
            return None
        return min(max(wait, MIN_SLEEP_SECONDS), budget)

    def _on_timeout(self, max_wait: float) -> bool:
        RATE_LIMIT_TIMEOUTS.labels(source=self._source).inc()
        logger.warning(
            "Rate limiter max wait exceeded",
            extra={"source": self._source, "max_wait": max_wait},
        )
        return False

    def acquire_blocking(self, max_wait: float = 120.0) -> bool:
        """Block the calling thread until a slot frees or ``max_wait`` elapses."""
        deadline = self._now() + max_wait
        waited = False
        while not self.try_acquire():
            delay = self._next_sleep(deadline)
            if delay is None:
                return self._on_timeout(max_wait)
            if not waited:
                RATE_LIMIT_WAITS.labels(source=self._source).inc()
                waited = True
            logger.debug("Rate limit: sleeping %.2fs for %s", delay, self._source)
            time.sleep(delay)
        return True

    async def acquire(self, max_wait: float = 120.0) -> bool:
        """Suspend the calling task until a slot frees or ``max_wait`` elapses."""
        deadline = self._now() + max_wait
        waited = False
        while not self.try_acquire():
            delay = self._next_sleep(deadline)
            if delay is None:
                return self._on_timeout(max_wait)
            if not waited:
                RATE_LIMIT_WAITS.labels(source=self._source).inc()
                waited = True
            logger.debug("Rate limit: sleeping %.2fs for %s", delay, self._source)
            await asyncio.sleep(delay)
        return True

    def current_count(self) -> int:
        with self._lock:
            self._prune_events(self._now())
            return len(self._events)

    def remaining(self) -> int:
        return max(0, self._limit - self.current_count())

    def reset(self) -> None:
        """Forget every recorded request."""
        with self._lock:
            self._events.clear()

    def status(self) -> RateLimiterStatus:
        current = self.current_count()
        return RateLimiterStatus(
            source=self._source,
            limit=self._limit,
            window_seconds=self._window_seconds,
            current=current,
            remaining=max(0, self._limit - current),
        )


class RateLimiterRegistry:
    """One limiter per logical source, created on first use."""

    def __init__(
        self,
        default_limit: int = 60,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._default_limit = default_limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def register(
        self, source: str, limit: int, window_seconds: float | None = None
    ) -> RateLimiter:
        """Return the limiter for ``source``, updating its budget if it changed.

        An existing limiter is reconfigured rather than replaced so requests
        already recorded in the window still count and current waiters keep
        the same instance.
        """
        window = window_seconds or self._window_seconds
        with self._lock:
            limiter = self._limiters.get(source)
            if limiter is None:
                limiter = RateLimiter(limit, window, source=source, clock=self._clock)
                self._limiters[source] = limiter
            elif (limiter.limit, limiter.window_seconds) != (limit, window):
                limiter.reconfigure(limit, window)
            return limiter

    def get(self, source: str) -> RateLimiter:
        with self._lock:
            limiter = self._limiters.get(source)
        if limiter is None:
            # Unregistered sources get the configured default budget.
            return self.register(source, self._default_limit)
        return limiter

    def sources(self) -> list[str]:
        with self._lock:
            return sorted(self._limiters)

    def status(self, source: str) -> RateLimiterStatus:
        return self.get(source).status()

    def reset(self, source: str) -> None:
        self.get(source).reset()

    def reset_all(self) -> None:
        with self._lock:
            limiters = list(self._limiters.values())
        for limiter in limiters:
            limiter.reset()
