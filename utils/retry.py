"""Retry controller with exponential backoff for provider calls.

Failures are classified by ``ErrorCategory`` only. Throttled and transient
errors are retried after ``delay_for(attempt)`` seconds; anything else is raised
on the spot so guaranteed failures never burn request budget.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from prometheus_client import Counter

from utils.errors import ErrorCategory

T = TypeVar("T")

RETRYABLE_CATEGORIES = frozenset({ErrorCategory.THROTTLED, ErrorCategory.TRANSIENT})

FETCH_RETRIES = Counter(
    "fetch_retries_total", "Retries scheduled after a retryable failure.", ("source", "category")
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings.

    Attributes:
        max_retries: Retries after the first attempt (default: 3, so 4 tries)
        initial_delay: Delay before the first retry in seconds (default: 2.0)
        backoff_factor: Multiplier applied per attempt (default: 2.0)
        max_delay: Upper bound for any single delay in seconds (default: 32.0)
    """

    max_retries: int = 3
    initial_delay: float = 2.0
    backoff_factor: float = 2.0
    max_delay: float = 32.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Return the delay after failed ``attempt`` (1-indexed).

        delay = min(max_delay, initial_delay * backoff_factor ** (attempt - 1))
        """
        if attempt < 1:
            raise ValueError("attempt is 1-indexed")
        delay = self.initial_delay * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_delay)


@dataclass
class RetryAttemptContext:
    """Bookkeeping for one ``RetryController.run`` call."""

    max_attempts: int
    attempt_number: int = 0
    last_error: BaseException | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt_number >= self.max_attempts


def classify(exc: BaseException) -> ErrorCategory:
    """Return the error category; uncategorized errors are fatal."""
    category = getattr(exc, "category", None)
    if isinstance(category, ErrorCategory):
        return category
    return ErrorCategory.FATAL


def is_retryable(exc: BaseException) -> bool:
    return classify(exc) in RETRYABLE_CATEGORIES


class RetryController:
    """Run a unit of work, retrying throttled and transient failures."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[object]] | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def run(self, work: Callable[[], Awaitable[T]], *, source: str = "") -> T:
        """Return ``await work()``, raising the last error once attempts run out."""
        context = RetryAttemptContext(max_attempts=self.policy.max_attempts)
        while True:
            context.attempt_number += 1
            try:
                return await work()
            except Exception as exc:
                context.last_error = exc
                category = classify(exc)
                if category not in RETRYABLE_CATEGORIES:
                    logger.debug(
                        "Non-retryable %s error from %s: %s",
                        category.value,
                        source or "work",
                        exc,
                    )
                    raise
                if context.exhausted:
                    logger.warning(
                        "Max retries (%d) exhausted for %s: %s",
                        self.policy.max_retries,
                        source or "work",
                        exc,
                    )
                    raise
                delay = self.policy.delay_for(context.attempt_number)
                FETCH_RETRIES.labels(source=source, category=category.value).inc()
                logger.warning(
                    "Retry %d/%d for %s after %s error: %s. Waiting %.2fs",
                    context.attempt_number,
                    self.policy.max_retries,
                    source or "work",
                    category.value,
                    exc,
                    delay,
                )
            await self._sleep(delay)
