"""Shared plumbing for provider clients."""

from __future__ import annotations

import logging
from importlib import import_module
from typing import Any

import httpx

from adapters.resilience import ResilientFetcher
from utils.config import ResilienceConfig
from utils.errors import FatalError, FetchError, ThrottledError, TransientError
from utils.rate_limiter import RateLimiterStatus

logger = logging.getLogger(__name__)

# Request timeouts, gateway errors and overload responses are worth retrying.
TRANSIENT_STATUS_CODES = frozenset({408, 500, 502, 503, 504})


def error_for_status(response: httpx.Response, source: str) -> FetchError:
    """Map an HTTP error response onto the retry taxonomy."""
    status = response.status_code
    message = f"{source} returned HTTP {status}"
    if status == 429:
        return ThrottledError(message, source=source, status_code=status)
    if status in TRANSIENT_STATUS_CODES or status >= 500:
        return TransientError(message, source=source, status_code=status)
    return FatalError(message, source=source, status_code=status)


def normalize_http_error(exc: httpx.HTTPError, source: str) -> FetchError:
    """Translate an httpx failure into a categorized ``FetchError``."""
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_status(exc.response, source)
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return TransientError(f"{source} request failed: {exc!r}", source=source)
    return FatalError(f"{source} request failed: {exc!r}", source=source)


class ProviderClient:
    """Base class for clients that fetch through a ``ResilientFetcher``.

    Subclasses set ``source``, ``base_url`` and ``rate_limit`` and build their
    network closures on top of ``_get_json``.
    """

    source: str = ""
    base_url: str = ""
    rate_limit: int = 60

    def __init__(
        self,
        fetcher: ResilientFetcher | None = None,
        *,
        config: ResilienceConfig | None = None,
        api_key: str | None = None,
    ) -> None:
        if fetcher is None:
            fetcher = ResilientFetcher(config or ResilienceConfig.from_env())
        self.fetcher = fetcher
        self.config = fetcher.config
        self.api_key = api_key
        self.fetcher.register_source(self.source, self.requests_per_window())

    def requests_per_window(self) -> int:
        return self.rate_limit

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``base_url + path`` and return the decoded JSON body."""
        url = f"{self.base_url}{path}"
        logger.debug("%s: GET %s", self.source, url)
        async with httpx.AsyncClient(timeout=self.config.http_timeout) as client:
            try:
                response = await client.get(url, params=params, headers=self._headers())
            except httpx.HTTPError as exc:
                raise normalize_http_error(exc, self.source) from exc
        if response.status_code >= 400:
            raise error_for_status(response, self.source)
        try:
            return response.json()
        except ValueError as exc:
            raise FatalError(
                f"{self.source} returned invalid JSON: {exc}", source=self.source
            ) from exc

    def status(self) -> RateLimiterStatus:
        return self.fetcher.limiter_status(self.source)


ADAPTERS: dict[str, type[ProviderClient]] = {}


def get_adapter(source: str) -> type[ProviderClient]:
    """Return the client class for the given source."""
    if source not in ADAPTERS:
        module = import_module(f"adapters.{source}")
        ADAPTERS[source] = module.CLIENT
    return ADAPTERS[source]
