"""DBnomics client (500 requests/minute, no key required)."""

from __future__ import annotations

from datetime import date
from typing import Any

import pandas as pd

from cache.codecs import FRAME_CODEC
from cache.keys import search_request
from utils.errors import FatalError

from .base import ProviderClient
from .resilience import FetchResult

BASE_URL = "https://api.db.nomics.world/v22"


def parse_series(payload: dict[str, Any], start: date, end: date) -> pd.DataFrame:
    """Return [date, value] rows for the first series in a DBnomics response."""
    try:
        docs = payload["series"]["docs"]
        doc = docs[0] if docs else {"period_start_day": [], "value": []}
        periods = pd.to_datetime(doc["period_start_day"])
        # DBnomics encodes missing values as the string "NA".
        values = pd.to_numeric(pd.Series(doc["value"], dtype="object"), errors="coerce")
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise FatalError(f"Unexpected DBnomics payload: {exc}", source="dbnomics") from exc
    frame = pd.DataFrame({"date": periods, "value": values.astype("float64").to_numpy()})
    in_range = (frame["date"] >= pd.Timestamp(start)) & (frame["date"] <= pd.Timestamp(end))
    return frame[in_range].reset_index(drop=True)


class DBnomicsClient(ProviderClient):
    source = "dbnomics"
    base_url = BASE_URL
    rate_limit = 500

    async def fetch_series(
        self, provider: str, dataset: str, series: str, start: date, end: date
    ) -> FetchResult:
        series_id = f"{provider}/{dataset}/{series}"

        async def call() -> pd.DataFrame:
            payload = await self._get_json(
                f"/series/{series_id}", {"observations": "1", "format": "json"}
            )
            return parse_series(payload, start, end)

        return await self.fetcher.fetch(
            self.source,
            (series_id, start, end),
            call,
            ttl=self.config.default_ttl,
            codec=FRAME_CODEC,
            metadata={
                "series_id": series_id,
                "provider": provider,
                "dataset": dataset,
                "series": series,
            },
        )

    async def search_series(
        self, query: str, limit: int = 100, provider: str | None = None
    ) -> FetchResult:
        async def call() -> list[dict[str, str]]:
            params = {"q": query, "limit": str(limit), "format": "json"}
            if provider is not None:
                params["provider_code"] = provider
            payload = await self._get_json("/search", params)
            try:
                return [
                    {
                        "provider": doc.get("provider_code", ""),
                        "dataset": doc.get("code", ""),
                        "title": doc.get("name", ""),
                        "series_count": doc.get("nb_series", 0),
                    }
                    for doc in payload["results"]["docs"]
                ]
            except (KeyError, TypeError, AttributeError) as exc:
                raise FatalError(
                    f"Unexpected DBnomics search payload: {exc}", source="dbnomics"
                ) from exc

        return await self.fetcher.fetch(
            self.source,
            search_request(query, limit, provider or "all"),
            call,
            ttl=self.config.search_ttl,
            metadata={"type": "search"},
        )


CLIENT = DBnomicsClient
