"""FRED (Federal Reserve Economic Data) client.

Rate limit: 120 requests/minute with an API key, 5 requests/minute without.
"""

from __future__ import annotations

import os
from datetime import date
from typing import Any

import pandas as pd

from cache.codecs import FRAME_CODEC
from cache.keys import search_request
from utils.config import ResilienceConfig
from utils.errors import FatalError

from .base import ProviderClient
from .resilience import FetchResult, ResilientFetcher

BASE_URL = "https://api.stlouisfed.org/fred"


def parse_observations(payload: dict[str, Any]) -> pd.DataFrame:
    """Convert a FRED observations payload into a [date, value] frame."""
    try:
        observations = payload["observations"]
        frame = pd.DataFrame(
            {
                "date": pd.to_datetime([obs["date"] for obs in observations]),
                # FRED marks missing observations with ".".
                "value": pd.to_numeric(
                    [obs["value"] for obs in observations], errors="coerce"
                ).astype("float64"),
            }
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise FatalError(f"Unexpected FRED observations payload: {exc}", source="fred") from exc
    return frame


class FREDClient(ProviderClient):
    source = "fred"
    base_url = BASE_URL

    def __init__(
        self,
        fetcher: ResilientFetcher | None = None,
        *,
        config: ResilienceConfig | None = None,
        api_key: str | None = None,
    ) -> None:
        super().__init__(fetcher, config=config, api_key=api_key or os.getenv("FRED_API_KEY"))

    def requests_per_window(self) -> int:
        return 120 if self.api_key else 5

    def _params(self, **params: Any) -> dict[str, Any]:
        params["file_type"] = "json"
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def fetch_series(self, series_id: str, start: date, end: date) -> FetchResult:
        """Return a FetchResult whose data is a [date, value] DataFrame."""

        async def call() -> pd.DataFrame:
            payload = await self._get_json(
                "/series/observations",
                self._params(
                    series_id=series_id,
                    observation_start=start.isoformat(),
                    observation_end=end.isoformat(),
                ),
            )
            return parse_observations(payload)

        return await self.fetcher.fetch(
            self.source,
            (series_id, start, end),
            call,
            ttl=self.config.default_ttl,
            codec=FRAME_CODEC,
            metadata={"series_id": series_id},
        )

    async def search_series(self, query: str, limit: int = 100) -> FetchResult:
        """Return a FetchResult whose data is a list of series descriptors."""

        async def call() -> list[dict[str, str]]:
            payload = await self._get_json(
                "/series/search", self._params(search_text=query, limit=str(limit))
            )
            try:
                return [
                    {
                        "id": series["id"],
                        "title": series["title"],
                        "frequency": series.get("frequency", ""),
                        "units": series.get("units", ""),
                        "seasonal_adjustment": series.get("seasonal_adjustment", ""),
                        "last_updated": series.get("last_updated", ""),
                    }
                    for series in payload["seriess"]
                ]
            except (KeyError, TypeError) as exc:
                raise FatalError(f"Unexpected FRED search payload: {exc}", source="fred") from exc

        return await self.fetcher.fetch(
            self.source,
            search_request(query, limit),
            call,
            ttl=self.config.search_ttl,
            metadata={"type": "search"},
        )


CLIENT = FREDClient
