import sqlite3

import pandas as pd
import pytest

from cache import sqlite_cache
from cache.codecs import FRAME_CODEC
from cache.sqlite_cache import SQLiteCache
from utils.errors import CacheUnavailableError


def test_set_then_get_round_trip(cache):
    cache.set("k1", '{"v": 1}', ttl=60)
    assert cache.get("k1") == '{"v": 1}'


def test_expired_entry_only_visible_to_fallback_accessor(cache, clock):
    cache.set("k1", "payload", ttl=10)
    clock.advance(11)

    assert cache.get("k1") is None
    assert cache.get_even_if_expired("k1") == "payload"


def test_entry_expires_exactly_at_ttl(cache, clock):
    cache.set("k1", "payload", ttl=10)
    clock.advance(9)
    assert cache.get("k1") == "payload"
    clock.advance(1)
    assert cache.get("k1") is None


def test_lookup_distinguishes_fresh_expired_and_absent(cache, clock):
    cache.set("k1", "payload", ttl=5, metadata={"source": "fred", "series_id": "GDPC1"})

    entry = cache.lookup("k1")
    assert entry is not None
    assert entry.source == "fred"
    assert entry.series_id == "GDPC1"
    assert entry.metadata == {"source": "fred", "series_id": "GDPC1"}
    assert entry.created_at <= entry.expires_at
    assert cache.is_fresh("k1") is True

    clock.advance(5)
    assert cache.lookup("k1") is not None
    assert cache.is_fresh("k1") is False
    assert cache.lookup("missing") is None


def test_default_ttl_applies_when_none_given(tmp_path, clock):
    cache = SQLiteCache(tmp_path / "c.db", default_ttl=100, clock=clock)
    cache.set("k1", "payload")
    entry = cache.lookup("k1")
    assert entry.expires_at - entry.created_at == 100


def test_negative_ttl_rejected(cache):
    with pytest.raises(ValueError):
        cache.set("k1", "payload", ttl=-1)


def test_set_overwrites_existing_key(cache, clock):
    cache.set("k1", "old", ttl=10)
    clock.advance(20)
    cache.set("k1", "new", ttl=10)
    assert cache.get("k1") == "new"
    assert cache.stats().total == 1


def test_clear_expired_only_removes_expired(cache, clock):
    cache.set("old", "a", ttl=5)
    cache.set("new", "b", ttl=500)
    clock.advance(10)

    assert cache.clear_expired() == 1
    assert cache.get_even_if_expired("old") is None
    assert cache.get("new") == "b"


def test_clear_all_and_by_source(cache):
    cache.set("a", "1", metadata={"source": "fred"})
    cache.set("b", "2", metadata={"source": "fred"})
    cache.set("c", "3", metadata={"source": "ecb"})

    assert cache.clear_by_source("fred") == 2
    assert cache.get("c") == "3"
    assert cache.clear_all() == 1
    assert cache.stats().total == 0


def test_delete_reports_whether_row_existed(cache):
    cache.set("a", "1")
    assert cache.delete("a") is True
    assert cache.delete("a") is False


def test_stats_counts_by_source(cache, clock):
    cache.set("a", "1", ttl=5, metadata={"source": "fred"})
    cache.set("b", "2", ttl=500, metadata={"source": "fred"})
    cache.set("c", "3", ttl=500, metadata={"source": "worldbank"})
    cache.set("d", "4", ttl=500)
    clock.advance(10)

    stats = cache.stats()
    assert stats.total == 4
    assert stats.active == 3
    assert stats.expired == 1
    assert stats.by_source == {"fred": 2, "worldbank": 1}
    assert stats.size_bytes > 0


def test_entries_survive_reopen(tmp_path, clock):
    path = tmp_path / "nested" / "cache.db"
    SQLiteCache(path, clock=clock).set("k1", "payload", ttl=60)

    reopened = SQLiteCache(path, clock=clock)
    assert reopened.get("k1") == "payload"


def test_schema_has_expiry_index(cache):
    conn = sqlite3.connect(cache.db_path)
    try:
        indexes = {row[1] for row in conn.execute("PRAGMA index_list('cache')")}
    finally:
        conn.close()
    assert "idx_expires_at" in indexes


def test_storage_errors_raise_cache_unavailable(cache, monkeypatch):
    def broken_connect(*_args, **_kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(sqlite_cache.sqlite3, "connect", broken_connect)

    with pytest.raises(CacheUnavailableError):
        cache.get("k1")
    with pytest.raises(CacheUnavailableError):
        cache.set("k1", "payload")


def test_corrupt_file_raises_cache_unavailable(tmp_path):
    path = tmp_path / "corrupt.db"
    path.write_bytes(b"this is not a sqlite database" * 100)
    with pytest.raises(CacheUnavailableError):
        SQLiteCache(path)


def test_frame_codec_preserves_dates_and_missing_values(cache):
    frame = pd.DataFrame(
        {
            "date": pd.to_datetime(["2020-01-01", "2020-04-01"]),
            "value": [1.5, float("nan")],
        }
    )
    cache.set("frame", FRAME_CODEC.encode(frame))

    restored = FRAME_CODEC.decode(cache.get("frame"))
    assert list(restored.columns) == ["date", "value"]
    assert pd.api.types.is_datetime64_any_dtype(restored["date"])
    assert restored["value"].iloc[0] == 1.5
    assert pd.isna(restored["value"].iloc[1])
