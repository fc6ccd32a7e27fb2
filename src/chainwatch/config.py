"""Environment and CLI runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Self

from dotenv import load_dotenv

from chainwatch.errors import ConfigError

DEFAULT_UNLOCK_TOKENS = ["SEI", "ATOM", "OSMO", "ETH"]


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse truthy environment strings."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_optional_positive_int(value: str | None, *, field_name: str) -> int | None:
    """Parse optional positive integer values from env strings."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    parsed = int(text)
    if parsed <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return parsed


def parse_optional_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value.strip())


def parse_tokens(value: str | None, default: list[str] | None = None) -> list[str]:
    """Parse comma-separated token symbols, dropping duplicates in order."""
    fallback = default or DEFAULT_UNLOCK_TOKENS
    if not value:
        return list(fallback)
    tokens: list[str] = []
    for item in value.split(","):
        symbol = item.strip().upper()
        if symbol and symbol not in tokens:
            tokens.append(symbol)
    return tokens or list(fallback)


def normalize_store_backend(value: str | None, default: str = "memory") -> str:
    """Normalize store backend selector values."""
    mapping = {
        "memory": "memory",
        "mem": "memory",
        "inmemory": "memory",
        "sqlite": "sqlite",
        "sqlite3": "sqlite",
        "db": "sqlite",
    }
    if value is None or not value.strip():
        return default
    candidate = value.strip().lower().replace("-", "").replace("_", "")
    return mapping.get(candidate, candidate)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings."""

    store_backend: str = "memory"
    state_db_path: str = "state/chainwatch_state.db"
    events_dir: str = "runs"
    log_level: str = "INFO"
    max_passes: int | None = None
    unlock_interval_seconds: float = 5.0
    anomaly_interval_seconds: float = 10.0
    unlock_tolerance_minutes: float = 10.0
    anomaly_capacity: int = 50
    store_failure_threshold: int = 3
    signal_seed: int | None = None
    seed_fixtures: bool = False
    unlock_tokens: list[str] = field(default_factory=lambda: list(DEFAULT_UNLOCK_TOKENS))
    webhook_url: str = ""
    webhook_timeout_seconds: float = 10.0
    whale_min_amount: float = 500_000.0
    whale_critical_amount: float = 800_000.0
    volume_min_spike_pct: float = 200.0
    volume_high_spike_pct: float = 400.0
    contract_min_interactions: int = 10
    flash_loan_min_amount: float = 1_000_000.0
    liquidity_min_drain_pct: float = 30.0
    liquidity_high_drain_pct: float = 60.0

    @classmethod
    def from_env(cls) -> Self:
        """Create settings from environment variables."""
        load_dotenv()
        raw = cls(
            store_backend=normalize_store_backend(os.getenv("STORE_BACKEND")),
            state_db_path=str(os.getenv("STATE_DB_PATH", "state/chainwatch_state.db")).strip(),
            events_dir=str(os.getenv("EVENTS_DIR", "runs")).strip(),
            log_level=str(os.getenv("LOG_LEVEL", "INFO")).strip().upper(),
            max_passes=parse_optional_positive_int(
                os.getenv("MAX_PASSES"),
                field_name="max_passes",
            ),
            unlock_interval_seconds=float(os.getenv("UNLOCK_INTERVAL_SECONDS", "5")),
            anomaly_interval_seconds=float(os.getenv("ANOMALY_INTERVAL_SECONDS", "10")),
            unlock_tolerance_minutes=float(os.getenv("UNLOCK_TOLERANCE_MINUTES", "10")),
            anomaly_capacity=int(os.getenv("ANOMALY_CAPACITY", "50")),
            store_failure_threshold=int(os.getenv("STORE_FAILURE_THRESHOLD", "3")),
            signal_seed=parse_optional_int(os.getenv("SIGNAL_SEED")),
            seed_fixtures=parse_bool(os.getenv("SEED_FIXTURES"), False),
            unlock_tokens=parse_tokens(os.getenv("UNLOCK_TOKENS")),
            webhook_url=str(os.getenv("WEBHOOK_URL", "")).strip(),
            webhook_timeout_seconds=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10")),
            whale_min_amount=float(os.getenv("WHALE_MIN_AMOUNT", "500000")),
            whale_critical_amount=float(os.getenv("WHALE_CRITICAL_AMOUNT", "800000")),
            volume_min_spike_pct=float(os.getenv("VOLUME_MIN_SPIKE_PCT", "200")),
            volume_high_spike_pct=float(os.getenv("VOLUME_HIGH_SPIKE_PCT", "400")),
            contract_min_interactions=int(os.getenv("CONTRACT_MIN_INTERACTIONS", "10")),
            flash_loan_min_amount=float(os.getenv("FLASH_LOAN_MIN_AMOUNT", "1000000")),
            liquidity_min_drain_pct=float(os.getenv("LIQUIDITY_MIN_DRAIN_PCT", "30")),
            liquidity_high_drain_pct=float(os.getenv("LIQUIDITY_HIGH_DRAIN_PCT", "60")),
        )
        return raw.validate()

    def with_overrides(self, **kwargs: object) -> Self:
        """Return a new settings object with updated values."""
        overrides = dict(kwargs)
        backend_override = overrides.get("store_backend")
        if isinstance(backend_override, str):
            overrides["store_backend"] = normalize_store_backend(backend_override)
        updated = replace(self, **overrides)
        return updated.validate()

    @property
    def unlock_tolerance(self) -> timedelta:
        return timedelta(minutes=self.unlock_tolerance_minutes)

    def pass_limit(self) -> int | None:
        """Return finite pass count per job, or None for continuous execution."""
        return self.max_passes

    def validate(self) -> Self:
        """Validate settings fields."""
        if self.store_backend not in {"memory", "sqlite"}:
            raise ConfigError("store_backend must be one of memory, sqlite")
        if self.store_backend == "sqlite" and not self.state_db_path:
            raise ConfigError("state_db_path is required for the sqlite store")
        if self.max_passes is not None and self.max_passes <= 0:
            raise ConfigError("max_passes must be positive")
        if self.unlock_interval_seconds <= 0:
            raise ConfigError("unlock_interval_seconds must be positive")
        if self.anomaly_interval_seconds <= 0:
            raise ConfigError("anomaly_interval_seconds must be positive")
        if self.unlock_tolerance_minutes < 0:
            raise ConfigError("unlock_tolerance_minutes must not be negative")
        if self.anomaly_capacity <= 0:
            raise ConfigError("anomaly_capacity must be positive")
        if self.store_failure_threshold <= 0:
            raise ConfigError("store_failure_threshold must be positive")
        if self.webhook_timeout_seconds <= 0:
            raise ConfigError("webhook_timeout_seconds must be positive")
        if not self.unlock_tokens:
            raise ConfigError("unlock_tokens must not be empty")
        if self.whale_critical_amount < self.whale_min_amount:
            raise ConfigError("whale_critical_amount must be at least whale_min_amount")
        if self.volume_high_spike_pct < self.volume_min_spike_pct:
            raise ConfigError("volume_high_spike_pct must be at least volume_min_spike_pct")
        if self.liquidity_high_drain_pct < self.liquidity_min_drain_pct:
            raise ConfigError("liquidity_high_drain_pct must be at least liquidity_min_drain_pct")
        if self.contract_min_interactions <= 0:
            raise ConfigError("contract_min_interactions must be positive")
        if self.flash_loan_min_amount <= 0:
            raise ConfigError("flash_loan_min_amount must be positive")
        return self
