"""World Bank indicators client (60 requests/minute, no key required)."""

from __future__ import annotations

from datetime import date
from typing import Any

import pandas as pd

from cache.codecs import FRAME_CODEC
from cache.keys import search_request
from utils.errors import FatalError

from .base import ProviderClient
from .resilience import FetchResult

BASE_URL = "https://api.worldbank.org/v2"


def parse_indicator(payload: Any, start: date, end: date) -> pd.DataFrame:
    """Return yearly [date, value] rows inside [start, end], oldest first.

    The API answers with ``[metadata, rows]``; ``rows`` is null when the
    indicator has no data for the country.
    """
    if not isinstance(payload, list) or not payload:
        raise FatalError("Unexpected World Bank payload shape", source="worldbank")
    rows = payload[1] if len(payload) > 1 and payload[1] is not None else []
    dates: list[pd.Timestamp] = []
    values: list[float] = []
    try:
        for obs in rows:
            if obs.get("value") is None or obs.get("date") is None:
                continue
            observed = pd.Timestamp(year=int(obs["date"]), month=1, day=1)
            if pd.Timestamp(start) <= observed <= pd.Timestamp(end):
                dates.append(observed)
                values.append(float(obs["value"]))
    except (AttributeError, TypeError, ValueError) as exc:
        raise FatalError(f"Unexpected World Bank row: {exc}", source="worldbank") from exc
    frame = pd.DataFrame(
        {"date": pd.to_datetime(dates), "value": pd.Series(values, dtype="float64")}
    )
    # The API returns newest first.
    return frame.sort_values("date", ignore_index=True)


class WorldBankClient(ProviderClient):
    source = "worldbank"
    base_url = BASE_URL
    rate_limit = 60

    async def fetch_series(
        self, indicator: str, country: str, start: date, end: date
    ) -> FetchResult:
        async def call() -> pd.DataFrame:
            payload = await self._get_json(
                f"/country/{country}/indicator/{indicator}",
                {"date": f"{start.year}:{end.year}", "format": "json", "per_page": "1000"},
            )
            return parse_indicator(payload, start, end)

        return await self.fetcher.fetch(
            self.source,
            (indicator, country, start, end),
            call,
            ttl=self.config.default_ttl,
            codec=FRAME_CODEC,
            metadata={"series_id": indicator, "country": country},
        )

    async def search_series(self, query: str, limit: int = 100) -> FetchResult:
        async def call() -> list[dict[str, str]]:
            # The indicator endpoint has no server-side text search.
            payload = await self._get_json(
                "/indicator", {"format": "json", "per_page": "20000"}
            )
            if not isinstance(payload, list) or len(payload) < 2 or payload[1] is None:
                raise FatalError("Unexpected World Bank indicator list", source="worldbank")
            needle = query.lower()
            matches = [
                {
                    "id": item.get("id", ""),
                    "title": item.get("name", ""),
                    "source": (item.get("source") or {}).get("value", ""),
                }
                for item in payload[1]
                if needle in (item.get("name") or "").lower()
                or needle in (item.get("id") or "").lower()
            ]
            return matches[:limit]

        return await self.fetcher.fetch(
            self.source,
            search_request(query, limit),
            call,
            ttl=self.config.search_ttl,
            metadata={"type": "search"},
        )


CLIENT = WorldBankClient
