"""Explicit configuration for the fetch pipeline.

Everything the pipeline needs is resolved once, when ``ResilienceConfig`` is
built, and then passed to constructors. ``from_env`` is the only place that
reads the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from utils.retry import RetryPolicy

DEFAULT_CACHE_PATH = Path.home() / ".economic-toolkit" / "cache" / "data.db"
DEFAULT_TTL_SECONDS = 24 * 60 * 60
SEARCH_TTL_SECONDS = 60 * 60


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if not raw or not raw.strip():
        return default
    return Path(raw.strip()).expanduser()


def _positive(value: float, default: float) -> float:
    # RateLimiter rejects non-positive windows.
    return value if value > 0 else default


@dataclass(frozen=True)
class ResilienceConfig:
    cache_path: Path = DEFAULT_CACHE_PATH
    default_ttl: int = DEFAULT_TTL_SECONDS
    search_ttl: int = SEARCH_TTL_SECONDS
    max_wait: float = 120.0
    window_seconds: float = 60.0
    default_rate_limit: int = 60
    http_timeout: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_env(cls) -> ResilienceConfig:
        """Build a config from environment variables, falling back to defaults."""
        defaults = RetryPolicy()
        retry = RetryPolicy(
            max_retries=max(_env_int("RETRY_MAX_RETRIES", defaults.max_retries), 0),
            initial_delay=max(_env_float("RETRY_INITIAL_DELAY_S", defaults.initial_delay), 0.0),
            backoff_factor=max(_env_float("RETRY_BACKOFF_FACTOR", defaults.backoff_factor), 1.0),
            max_delay=max(_env_float("RETRY_MAX_DELAY_S", defaults.max_delay), 0.0),
        )
        return cls(
            cache_path=_env_path("CACHE_DB_PATH", DEFAULT_CACHE_PATH),
            default_ttl=max(_env_int("CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS), 1),
            search_ttl=max(_env_int("CACHE_SEARCH_TTL_SECONDS", SEARCH_TTL_SECONDS), 1),
            max_wait=max(_env_float("RATE_LIMIT_MAX_WAIT_S", 120.0), 0.0),
            window_seconds=_positive(_env_float("RATE_LIMIT_WINDOW_S", 60.0), 60.0),
            default_rate_limit=max(_env_int("RATE_LIMIT_DEFAULT", 60), 1),
            http_timeout=max(_env_float("HTTP_TIMEOUT_S", 30.0), 1.0),
            retry=retry,
        )
