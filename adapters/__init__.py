"""Adapter package exports."""

from .base import ProviderClient, get_adapter, normalize_http_error
from .resilience import FetchResult, Origin, ResilientFetcher

__all__ = [
    "ResilientFetcher",
    "FetchResult",
    "Origin",
    "ProviderClient",
    "get_adapter",
    "normalize_http_error",
]
