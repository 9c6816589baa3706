"""Shared fixtures for the fetch pipeline tests."""

import pytest

from adapters.resilience import ResilientFetcher, reset_fetch_stats
from cache.sqlite_cache import SQLiteCache
from utils.config import ResilienceConfig
from utils.rate_limiter import RateLimiterRegistry
from utils.retry import RetryController, RetryPolicy


class FakeClock:
    """Manually advanced clock shared by limiters and caches."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays and advances a clock."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return SQLiteCache(tmp_path / "cache.db", default_ttl=3600, clock=clock)


@pytest.fixture
def sleeper(clock):
    return RecordingSleep(clock)


@pytest.fixture
def fetcher(tmp_path, cache, clock, sleeper):
    reset_fetch_stats()
    config = ResilienceConfig(
        cache_path=tmp_path / "cache.db",
        default_ttl=3600,
        max_wait=5.0,
        retry=RetryPolicy(max_retries=3, initial_delay=2.0, backoff_factor=2.0, max_delay=32.0),
    )
    return ResilientFetcher(
        config,
        cache=cache,
        limiters=RateLimiterRegistry(default_limit=10, window_seconds=60.0, clock=clock),
        retry=RetryController(config.retry, sleep=sleeper),
    )
