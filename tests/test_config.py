from __future__ import annotations

from datetime import timedelta

import pytest

from chainwatch.config import Settings, normalize_store_backend, parse_bool, parse_tokens
from chainwatch.errors import ConfigError

ENV_KEYS = [
    "STORE_BACKEND",
    "STATE_DB_PATH",
    "UNLOCK_INTERVAL_SECONDS",
    "ANOMALY_INTERVAL_SECONDS",
    "UNLOCK_TOLERANCE_MINUTES",
    "ANOMALY_CAPACITY",
    "SIGNAL_SEED",
    "EVENTS_DIR",
    "LOG_LEVEL",
    "WEBHOOK_URL",
    "STORE_FAILURE_THRESHOLD",
    "MAX_PASSES",
    "UNLOCK_TOKENS",
    "SEED_FIXTURES",
    "WHALE_MIN_AMOUNT",
]


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("chainwatch.config.load_dotenv", lambda *args, **kwargs: None)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)

    settings = Settings.from_env()

    assert settings.store_backend == "memory"
    assert settings.unlock_interval_seconds == 5.0
    assert settings.anomaly_interval_seconds == 10.0
    assert settings.unlock_tolerance == timedelta(minutes=10)
    assert settings.anomaly_capacity == 50
    assert settings.store_failure_threshold == 3
    assert settings.pass_limit() is None
    assert settings.signal_seed is None
    assert settings.webhook_url == ""


def test_environment_values_are_parsed(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("STORE_BACKEND", "SQLite3")
    monkeypatch.setenv("STATE_DB_PATH", "/tmp/chainwatch.db")
    monkeypatch.setenv("UNLOCK_TOLERANCE_MINUTES", "2.5")
    monkeypatch.setenv("ANOMALY_CAPACITY", "5")
    monkeypatch.setenv("SIGNAL_SEED", "42")
    monkeypatch.setenv("MAX_PASSES", "3")
    monkeypatch.setenv("UNLOCK_TOKENS", "sei, atom,sei")
    monkeypatch.setenv("SEED_FIXTURES", "yes")
    monkeypatch.setenv("WHALE_MIN_AMOUNT", "1000")

    settings = Settings.from_env()

    assert settings.store_backend == "sqlite"
    assert settings.state_db_path == "/tmp/chainwatch.db"
    assert settings.unlock_tolerance == timedelta(minutes=2.5)
    assert settings.anomaly_capacity == 5
    assert settings.signal_seed == 42
    assert settings.max_passes == 3
    assert settings.unlock_tokens == ["SEI", "ATOM"]
    assert settings.seed_fixtures is True
    assert settings.whale_min_amount == 1000.0


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("STORE_BACKEND", "redis"),
        ("ANOMALY_CAPACITY", "0"),
        ("UNLOCK_INTERVAL_SECONDS", "0"),
        ("UNLOCK_TOLERANCE_MINUTES", "-1"),
        ("MAX_PASSES", "0"),
        ("STORE_FAILURE_THRESHOLD", "0"),
    ],
)
def test_invalid_environment_raises_config_error(
    monkeypatch: pytest.MonkeyPatch, key: str, value: str
) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv(key, value)

    with pytest.raises(ConfigError):
        Settings.from_env()


def test_with_overrides_revalidates() -> None:
    settings = Settings()

    assert settings.with_overrides(store_backend="db").store_backend == "sqlite"
    with pytest.raises(ValueError):
        settings.with_overrides(whale_critical_amount=1.0)


def test_parsers() -> None:
    assert parse_bool(None, True) is True
    assert parse_bool("off", True) is False
    assert parse_tokens("", ["X"]) == ["X"]
    assert normalize_store_backend("in-memory") == "memory"
    assert normalize_store_backend(None) == "memory"
