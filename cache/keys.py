"""Canonical cache keys for provider requests.

Callers never choose raw keys. The request-defining fields are canonicalized,
joined with ``|`` and hashed with SHA-256, so identical logical requests always
share a key and any differing field yields a different one.
"""

from __future__ import annotations

import hashlib
from datetime import date, datetime
from typing import Any

DELIMITER = "|"


def _canonical(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    text = str(value)
    # Escape the delimiter so ("a|b", "c") and ("a", "b|c") stay distinct.
    return text.replace("\\", "\\\\").replace(DELIMITER, "\\" + DELIMITER)


def canonical_request(source: str, *fields: Any) -> str:
    """Return the delimited string that ``cache_key`` hashes."""
    return DELIMITER.join(_canonical(part) for part in (source, *fields))


def cache_key(source: str, *fields: Any) -> str:
    """Return a 64-character hex digest for a source and its request fields."""
    raw = canonical_request(source, *fields)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def search_request(query: str, *extra: Any) -> tuple[Any, ...]:
    """Return the request fields for a search, namespaced apart from series fetches."""
    return ("search", query, *extra)


def search_cache_key(source: str, query: str, *extra: Any) -> str:
    return cache_key(source, *search_request(query, *extra))
