"""Persistent SQLite cache with per-entry expiry.

The cache is a single local file holding one ``cache`` table keyed by the
request digest. Entries survive process restarts. Ordinary reads only return
fresh rows; ``get_even_if_expired`` exists for the stale-fallback path.

Each operation opens its own connection and commits in one transaction, so a
concurrent reader never sees a half-written row and concurrent writers for the
same key resolve as last-write-wins.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from utils.config import DEFAULT_CACHE_PATH, DEFAULT_TTL_SECONDS
from utils.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS cache (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        expires_at INTEGER NOT NULL,
        source TEXT,
        series_id TEXT,
        metadata TEXT
    )""",
    "CREATE INDEX IF NOT EXISTS idx_expires_at ON cache(expires_at)",
)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: str
    created_at: int
    expires_at: int
    source: str = ""
    series_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_fresh(self, now: int) -> bool:
        return now < self.expires_at


class CacheStats(BaseModel):
    """Summary of cache contents for operational tooling."""

    total: int = Field(..., description="Number of stored entries")
    active: int = Field(..., description="Entries that are still fresh")
    expired: int = Field(..., description="Entries past their expiry")
    by_source: dict[str, int] = Field(
        default_factory=dict, description="Entry counts per data source"
    )
    size_bytes: int = Field(..., description="Size of the cache file on disk")
    size_mb: float = Field(..., description="Size of the cache file in megabytes")


def _decode_metadata(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {}
    return value if isinstance(value, dict) else {}


class SQLiteCache:
    """Durable key/value store with TTL, backed by one SQLite file."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
        timeout: float = 5.0,
    ) -> None:
        if default_ttl < 0:
            raise ValueError("default_ttl must be non-negative")
        self.db_path = Path(db_path) if db_path is not None else DEFAULT_CACHE_PATH
        self.default_ttl = default_ttl
        self._clock = clock
        self._timeout = timeout
        self._init_schema()
        logger.debug("SQLite cache ready at %s (default_ttl=%ss)", self.db_path, default_ttl)

    def _now(self) -> int:
        if self._clock is not None:
            return int(self._clock())
        return int(time.time())

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self._timeout)
        except (sqlite3.Error, OSError) as exc:
            raise CacheUnavailableError(f"Cannot open cache at {self.db_path}: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except (sqlite3.Error, OSError) as exc:
            # Closing without a commit discards the partial transaction.
            raise CacheUnavailableError(f"Cache operation failed: {exc}") from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheUnavailableError(f"Cannot create {self.db_path.parent}: {exc}") from exc
        with self._connection() as conn:
            # WAL lets readers proceed while another connection writes.
            conn.execute("PRAGMA journal_mode=WAL")
            for statement in _SCHEMA:
                conn.execute(statement)

    def get(self, key: str) -> str | None:
        """Return the cached value if it exists and has not expired."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM cache WHERE key = ? AND expires_at > ?",
                (key, self._now()),
            ).fetchone()
        return None if row is None else row[0]

    def get_even_if_expired(self, key: str) -> str | None:
        """Return the cached value regardless of expiry (stale fallback only)."""
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM cache WHERE key = ?", (key,)).fetchone()
        return None if row is None else row[0]

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the full entry so callers can tell fresh, expired and absent apart."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT key, value, created_at, expires_at, source, series_id, metadata "
                "FROM cache WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            key=row[0],
            value=row[1],
            created_at=row[2],
            expires_at=row[3],
            source=row[4] or "",
            series_id=row[5] or "",
            metadata=_decode_metadata(row[6]),
        )

    def is_fresh(self, key: str) -> bool:
        entry = self.lookup(key)
        return entry is not None and entry.is_fresh(self._now())

    def set(
        self,
        key: str,
        value: str,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (default TTL if None)."""
        ttl_seconds = self.default_ttl if ttl is None else ttl
        if ttl_seconds < 0:
            raise ValueError("ttl must be non-negative")
        metadata = dict(metadata or {})
        created_at = self._now()
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache "
                "(key, value, created_at, expires_at, source, series_id, metadata) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    key,
                    value,
                    created_at,
                    created_at + ttl_seconds,
                    str(metadata.get("source", "")),
                    str(metadata.get("series_id", "")),
                    json.dumps(metadata, default=str),
                ),
            )

    def _delete_where(self, clause: str, params: tuple[Any, ...]) -> int:
        with self._connection() as conn:
            removed = conn.execute(f"DELETE FROM cache {clause}", params).rowcount
        return removed

    def delete(self, key: str) -> bool:
        return self._delete_where("WHERE key = ?", (key,)) > 0

    def clear_expired(self) -> int:
        """Delete entries whose expiry has passed and return how many were removed."""
        removed = self._delete_where("WHERE expires_at <= ?", (self._now(),))
        logger.info("Cleared %d expired cache entries", removed)
        return removed

    def clear_all(self) -> int:
        removed = self._delete_where("", ())
        logger.info("Cleared %d cache entries", removed)
        return removed

    def clear_by_source(self, source: str) -> int:
        removed = self._delete_where("WHERE source = ?", (source,))
        logger.info("Cleared %d cache entries for %s", removed, source)
        return removed

    def _size_on_disk(self) -> int:
        size = 0
        for path in (self.db_path, self.db_path.with_name(self.db_path.name + "-wal")):
            try:
                size += path.stat().st_size
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise CacheUnavailableError(f"Cannot stat {path}: {exc}") from exc
        return size

    def stats(self) -> CacheStats:
        now = self._now()
        with self._connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM cache").fetchone()[0]
            active = conn.execute(
                "SELECT COUNT(*) FROM cache WHERE expires_at > ?", (now,)
            ).fetchone()[0]
            by_source = dict(
                conn.execute(
                    "SELECT source, COUNT(*) FROM cache "
                    "WHERE source IS NOT NULL AND source != '' GROUP BY source"
                ).fetchall()
            )
        size_bytes = self._size_on_disk()
        return CacheStats(
            total=total,
            active=active,
            expired=total - active,
            by_source=by_source,
            size_bytes=size_bytes,
            size_mb=round(size_bytes / 1024 / 1024, 2),
        )
