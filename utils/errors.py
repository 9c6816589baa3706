"""Error taxonomy shared by provider clients and the fetch pipeline.

Provider clients translate their transport and HTTP failures into one of the
``FetchError`` subclasses below. The retry controller only ever looks at the
``category`` attribute, never at provider-specific exception types.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    THROTTLED = "throttled"
    TRANSIENT = "transient"
    FATAL = "fatal"


class FetchError(Exception):
    """Base class for categorized data-acquisition failures."""

    category: ErrorCategory = ErrorCategory.FATAL

    def __init__(
        self,
        message: str = "Fetch failed",
        *,
        source: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.source = source
        self.status_code = status_code
        super().__init__(message)


class ThrottledError(FetchError):
    """The provider signaled rate exhaustion (HTTP 429)."""

    category = ErrorCategory.THROTTLED


class TransientError(FetchError):
    """Timeouts, connection failures and 5xx-class provider failures."""

    category = ErrorCategory.TRANSIENT


class FatalError(FetchError):
    """Malformed request, not-found, auth failure or unparseable response."""

    category = ErrorCategory.FATAL


class RateLimiterTimeout(FetchError):
    """The bounded wait for a local send slot expired.

    Never retried; the orchestrator sends it straight to stale fallback.
    """

    category = ErrorCategory.FATAL

    def __init__(self, source: str, max_wait: float) -> None:
        self.max_wait = max_wait
        super().__init__(
            f"Rate limiter wait exceeded {max_wait:.1f}s for {source}",
            source=source,
        )


class CacheUnavailableError(Exception):
    """Local cache storage failed (disk full, locked, corrupt)."""
