"""Resilient fetch: cache check, rate-limit wait, retries, stale fallback.

``ResilientFetcher.fetch`` is the single entry point provider clients use.
The order of the stages matters:

1. A fresh cache hit returns immediately and never consumes request budget.
2. On a miss the source's rate limiter must clear the request within
   ``max_wait``; a timeout goes straight to stale fallback.
3. The provider call runs under the retry controller.
4. Fresh results are written back with the call-site TTL.
5. When no fresh data can be had, any cached copy (even expired) is returned
   and flagged stale; only when none exists does the error reach the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any

from prometheus_client import Counter, Gauge

from cache.codecs import JSON_CODEC, Codec
from cache.keys import cache_key
from cache.sqlite_cache import CacheStats, SQLiteCache
from utils.config import ResilienceConfig
from utils.errors import CacheUnavailableError, RateLimiterTimeout
from utils.logging_setup import log_outcome
from utils.rate_limiter import RateLimiterRegistry, RateLimiterStatus
from utils.retry import RetryController

FETCH_CACHE_HITS = Counter("fetch_cache_hits_total", "Fresh cache hits by source.", ("source",))
FETCH_CACHE_MISSES = Counter("fetch_cache_misses_total", "Cache misses by source.", ("source",))
FETCH_STALE_FALLBACKS = Counter(
    "fetch_stale_fallbacks_total", "Stale entries served after a failed fetch.", ("source",)
)
FETCH_HIT_RATIO = Gauge("fetch_cache_hit_ratio", "Fresh cache hit ratio by source.", ("source",))

_METRICS_LOCK = Lock()
_FETCH_METRICS: dict[str, dict[str, int]] = {}

logger = logging.getLogger(__name__)

# Marks "no usable entry"; a cached payload may itself decode to None.
_MISSING = object()


class Origin(str, Enum):
    NETWORK = "network"
    CACHE = "cache"
    STALE = "stale"


@dataclass(frozen=True)
class FetchResult:
    """Fetched data tagged with where it came from."""

    data: Any
    origin: Origin
    key: str

    @property
    def from_cache(self) -> bool:
        return self.origin is not Origin.NETWORK

    @property
    def stale(self) -> bool:
        return self.origin is Origin.STALE


def _record_fetch_metric(source: str, outcome: str) -> None:
    with _METRICS_LOCK:
        stats = _FETCH_METRICS.setdefault(source, {"hits": 0, "misses": 0, "stale": 0})
        stats[outcome] += 1
        if outcome == "hits":
            FETCH_CACHE_HITS.labels(source=source).inc()
        elif outcome == "misses":
            FETCH_CACHE_MISSES.labels(source=source).inc()
        else:
            FETCH_STALE_FALLBACKS.labels(source=source).inc()
        total = stats["hits"] + stats["misses"]
        if total:
            FETCH_HIT_RATIO.labels(source=source).set(stats["hits"] / total)


def get_fetch_stats(source: str) -> dict[str, int | float]:
    """Return hit/miss/stale counts and the fresh hit ratio for a source."""
    with _METRICS_LOCK:
        stats = _FETCH_METRICS.get(source, {"hits": 0, "misses": 0, "stale": 0}).copy()
    total = stats["hits"] + stats["misses"]
    ratio = (stats["hits"] / total) if total else 0.0
    return {**stats, "hit_ratio": ratio}


def reset_fetch_stats() -> None:
    """Reset in-process fetch statistics (useful for tests)."""
    with _METRICS_LOCK:
        _FETCH_METRICS.clear()


class ResilientFetcher:
    """Compose the cache, per-source rate limiters and the retry controller."""

    def __init__(
        self,
        config: ResilienceConfig | None = None,
        *,
        cache: SQLiteCache | None = None,
        limiters: RateLimiterRegistry | None = None,
        retry: RetryController | None = None,
    ) -> None:
        self.config = config or ResilienceConfig()
        self.cache = cache or SQLiteCache(
            self.config.cache_path, default_ttl=self.config.default_ttl
        )
        self.limiters = limiters or RateLimiterRegistry(
            self.config.default_rate_limit, self.config.window_seconds
        )
        self.retry = retry or RetryController(self.config.retry)

    def _read_fresh(self, key: str, source: str, codec: Codec) -> Any:
        try:
            payload = self.cache.get(key)
        except CacheUnavailableError as exc:
            logger.warning("Cache unavailable for %s read, treating as miss: %s", source, exc)
            return _MISSING
        if payload is None:
            return _MISSING
        try:
            return codec.decode(payload)
        except ValueError as exc:
            logger.warning("Undecodable cache entry for %s, treating as miss: %s", source, exc)
            return _MISSING

    def _read_stale(self, key: str, source: str, codec: Codec) -> Any:
        try:
            payload = self.cache.get_even_if_expired(key)
        except CacheUnavailableError as exc:
            logger.error("Cache unavailable during stale fallback for %s: %s", source, exc)
            return _MISSING
        if payload is None:
            return _MISSING
        try:
            return codec.decode(payload)
        except ValueError as exc:
            logger.error("Undecodable stale entry for %s: %s", source, exc)
            return _MISSING

    def _write(
        self,
        key: str,
        source: str,
        data: Any,
        codec: Codec,
        ttl: int | None,
        metadata: dict[str, Any] | None,
    ) -> None:
        tags = {"source": source, **(metadata or {})}
        try:
            self.cache.set(key, codec.encode(data), ttl=ttl, metadata=tags)
        except CacheUnavailableError as exc:
            logger.warning("Could not cache result for %s: %s", source, exc)

    def _stale_fallback(
        self, key: str, source: str, codec: Codec, error: BaseException
    ) -> FetchResult | None:
        stale = self._read_stale(key, source, codec)
        if stale is _MISSING:
            logger.error(
                "No cached data available for %s after %s: %s",
                source,
                type(error).__name__,
                error,
            )
            return None
        _record_fetch_metric(source, "stale")
        log_outcome(
            logger,
            f"Serving stale cache for {source} after {type(error).__name__}",
            stale=True,
            extra={"source": source, "cache_key": key},
        )
        return FetchResult(data=stale, origin=Origin.STALE, key=key)

    async def fetch(
        self,
        source: str,
        params: Sequence[Any],
        call: Callable[[], Awaitable[Any]],
        *,
        ttl: int | None = None,
        codec: Codec = JSON_CODEC,
        metadata: dict[str, Any] | None = None,
    ) -> FetchResult:
        """Return data for ``(source, params)``, calling ``call`` only when needed.

        Parameters
        ----------
        source:
            Logical source identifier; selects the rate limiter.
        params:
            Ordered request-defining fields used to derive the cache key.
        call:
            Zero-argument coroutine function performing the provider request.
            It must raise categorized ``FetchError`` subclasses.
        ttl:
            Seconds the fresh result stays valid (cache default if None).
        codec:
            Converts results to and from their cached string form.
        metadata:
            Extra tags stored alongside the entry.
        """
        key = cache_key(source, *params)

        cached = self._read_fresh(key, source, codec)
        if cached is not _MISSING:
            _record_fetch_metric(source, "hits")
            logger.debug("Cache hit for %s", source, extra={"cache_key": key})
            return FetchResult(data=cached, origin=Origin.CACHE, key=key)
        _record_fetch_metric(source, "misses")

        limiter = self.limiters.get(source)
        if not await limiter.acquire(self.config.max_wait):
            timeout = RateLimiterTimeout(source, self.config.max_wait)
            result = self._stale_fallback(key, source, codec, timeout)
            if result is None:
                raise timeout
            return result

        try:
            data = await self.retry.run(call, source=source)
        except Exception as exc:
            result = self._stale_fallback(key, source, codec, exc)
            if result is None:
                raise
            return result

        self._write(key, source, data, codec, ttl, metadata)
        log_outcome(logger, f"Fetched fresh data for {source}", extra={"source": source})
        return FetchResult(data=data, origin=Origin.NETWORK, key=key)

    def register_source(
        self, source: str, limit: int, window_seconds: float | None = None
    ) -> None:
        self.limiters.register(source, limit, window_seconds)

    def limiter_status(self, source: str) -> RateLimiterStatus:
        return self.limiters.status(source)

    def reset_limiter(self, source: str) -> None:
        self.limiters.reset(source)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_expired(self) -> int:
        return self.cache.clear_expired()

    def clear_all(self) -> int:
        return self.cache.clear_all()

    def invalidate(self, source: str, *params: Any) -> bool:
        """Drop the cached entry for one logical request."""
        return self.cache.delete(cache_key(source, *params))
