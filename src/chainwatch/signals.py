"""Observed market state consumed by anomaly detectors."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from chainwatch.clock import Clock, utc_now
from chainwatch.domain.models import ensure_utc

WHALE_TOKENS = ["SEI", "USDC", "ATOM", "OSMO"]
VOLUME_TOKENS = ["SEI", "USDC", "ATOM"]
FLASH_LOAN_PROTOCOLS = ["Astroport", "Osmosis"]
DEFAULT_POOL = "SEI/USDC"


@dataclass(frozen=True)
class Transfer:
    wallet_address: str
    token: str
    amount: float
    direction: str = "out"
    usd_price: float | None = None


@dataclass(frozen=True)
class VolumeChange:
    token: str
    spike_pct: float
    timeframe: str = "5m"


@dataclass(frozen=True)
class ContractInteraction:
    contract_address: str
    wallet_address: str
    interaction_count: int
    verified: bool = False


@dataclass(frozen=True)
class FlashLoan:
    wallet_address: str
    token: str
    amount: float
    profit: float
    protocols: tuple[str, ...] = ()


@dataclass(frozen=True)
class PoolChange:
    pool: str
    drain_pct: float
    timeframe: str = "10m"


@dataclass(frozen=True)
class MarketSignal:
    """One snapshot of chain activity; detectors read it and never mutate it."""

    observed_at: datetime
    transfers: tuple[Transfer, ...] = ()
    volume_changes: tuple[VolumeChange, ...] = ()
    contract_interactions: tuple[ContractInteraction, ...] = ()
    flash_loans: tuple[FlashLoan, ...] = ()
    pool_changes: tuple[PoolChange, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "observed_at", ensure_utc(self.observed_at))


class SignalSource(Protocol):
    """Produces the signal evaluated by one generator tick."""

    def next_signal(self) -> MarketSignal:
        """Return the current market snapshot."""


class SyntheticSignalSource:
    """Seeded random activity mimicking the dashboard's simulated listeners."""

    def __init__(self, seed: int | None = None, clock: Clock = utc_now) -> None:
        self.rng = random.Random(seed)
        self.clock = clock

    def next_signal(self) -> MarketSignal:
        return MarketSignal(
            observed_at=self.clock(),
            transfers=tuple(self._transfers()),
            volume_changes=tuple(self._volume_changes()),
            contract_interactions=tuple(self._contract_interactions()),
            flash_loans=tuple(self._flash_loans()),
            pool_changes=tuple(self._pool_changes()),
        )

    def _address(self) -> str:
        return f"0x{self.rng.getrandbits(32):08x}..."

    def _transfers(self) -> list[Transfer]:
        transfers = [
            Transfer(
                wallet_address=self._address(),
                token=self.rng.choice(WHALE_TOKENS),
                amount=float(self.rng.randint(1_000, 400_000)),
                direction=self.rng.choice(["in", "out"]),
            )
            for _ in range(self.rng.randint(0, 3))
        ]
        if self.rng.random() < 0.4:
            transfers.append(
                Transfer(
                    wallet_address=self._address(),
                    token=self.rng.choice(WHALE_TOKENS),
                    amount=float(self.rng.randint(500_000, 1_499_999)),
                    direction="in" if self.rng.random() > 0.5 else "out",
                )
            )
        return transfers

    def _volume_changes(self) -> list[VolumeChange]:
        if self.rng.random() < 0.3:
            spike = float(self.rng.randint(200, 699))
        else:
            spike = float(self.rng.randint(0, 150))
        return [VolumeChange(token=self.rng.choice(VOLUME_TOKENS), spike_pct=spike)]

    def _contract_interactions(self) -> list[ContractInteraction]:
        unverified = self.rng.random() < 0.2
        count = self.rng.randint(10, 59) if unverified else self.rng.randint(1, 9)
        return [
            ContractInteraction(
                contract_address=self._address(),
                wallet_address=self._address(),
                interaction_count=count,
                verified=not unverified,
            )
        ]

    def _flash_loans(self) -> list[FlashLoan]:
        if self.rng.random() >= 0.1:
            return []
        return [
            FlashLoan(
                wallet_address=self._address(),
                token="USDC",
                amount=float(self.rng.randint(1_000_000, 2_999_999)),
                profit=float(self.rng.randint(10_000, 59_999)),
                protocols=tuple(FLASH_LOAN_PROTOCOLS),
            )
        ]

    def _pool_changes(self) -> list[PoolChange]:
        if self.rng.random() < 0.15:
            drain = float(self.rng.randint(30, 89))
        else:
            drain = float(self.rng.randint(0, 20))
        return [PoolChange(pool=DEFAULT_POOL, drain_pct=drain)]
