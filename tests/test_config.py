from pathlib import Path

from utils.config import DEFAULT_CACHE_PATH, DEFAULT_TTL_SECONDS, ResilienceConfig
from utils.retry import RetryPolicy

ENV_VARS = (
    "CACHE_DB_PATH",
    "CACHE_TTL_SECONDS",
    "CACHE_SEARCH_TTL_SECONDS",
    "RATE_LIMIT_MAX_WAIT_S",
    "RATE_LIMIT_WINDOW_S",
    "RATE_LIMIT_DEFAULT",
    "HTTP_TIMEOUT_S",
    "RETRY_MAX_RETRIES",
    "RETRY_INITIAL_DELAY_S",
    "RETRY_BACKOFF_FACTOR",
    "RETRY_MAX_DELAY_S",
)


def _clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment(monkeypatch):
    _clear_env(monkeypatch)
    config = ResilienceConfig.from_env()

    assert config.cache_path == DEFAULT_CACHE_PATH
    assert config.default_ttl == DEFAULT_TTL_SECONDS == 86400
    assert config.search_ttl == 3600
    assert config.max_wait == 120.0
    assert config.window_seconds == 60.0
    assert config.retry == RetryPolicy()


def test_environment_overrides(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    monkeypatch.setenv("CACHE_DB_PATH", str(tmp_path / "data.db"))
    monkeypatch.setenv("CACHE_TTL_SECONDS", "600")
    monkeypatch.setenv("RATE_LIMIT_MAX_WAIT_S", "5")
    monkeypatch.setenv("RETRY_MAX_RETRIES", "1")
    monkeypatch.setenv("RETRY_MAX_DELAY_S", "4")

    config = ResilienceConfig.from_env()

    assert config.cache_path == Path(tmp_path / "data.db")
    assert config.default_ttl == 600
    assert config.max_wait == 5.0
    assert config.retry.max_retries == 1
    assert config.retry.max_delay == 4.0


def test_invalid_values_fall_back_or_clamp(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("CACHE_TTL_SECONDS", "not-a-number")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_S", "-3")
    monkeypatch.setenv("RETRY_MAX_RETRIES", "-2")
    monkeypatch.setenv("RETRY_BACKOFF_FACTOR", "0.1")
    monkeypatch.setenv("CACHE_DB_PATH", "   ")

    config = ResilienceConfig.from_env()

    assert config.default_ttl == DEFAULT_TTL_SECONDS
    assert config.window_seconds == 60.0
    assert config.retry.max_retries == 0
    assert config.retry.backoff_factor == 1.0
    assert config.cache_path == DEFAULT_CACHE_PATH
