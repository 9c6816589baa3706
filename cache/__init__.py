"""Cache package exports."""

from .codecs import FRAME_CODEC, JSON_CODEC, Codec
from .keys import cache_key, search_cache_key, search_request
from .sqlite_cache import CacheEntry, CacheStats, SQLiteCache

__all__ = [
    "SQLiteCache",
    "CacheEntry",
    "CacheStats",
    "Codec",
    "JSON_CODEC",
    "FRAME_CODEC",
    "cache_key",
    "search_cache_key",
    "search_request",
]
