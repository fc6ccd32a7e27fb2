"""Liquidity pool drain detector."""

from __future__ import annotations

from dataclasses import dataclass

from chainwatch.config import Settings
from chainwatch.detectors.base import Detector, new_anomaly_id
from chainwatch.domain.models import AnomalyCategory, AnomalyEvent, Severity
from chainwatch.signals import MarketSignal


@dataclass(frozen=True)
class LiquidityDrainParams:
    """Drain percentage thresholds."""

    min_drain_pct: float = 30.0
    high_drain_pct: float = 60.0


def default_liquidity_drain_params() -> LiquidityDrainParams:
    return LiquidityDrainParams()


def params_from_settings(settings: Settings) -> LiquidityDrainParams:
    return LiquidityDrainParams(
        min_drain_pct=settings.liquidity_min_drain_pct,
        high_drain_pct=settings.liquidity_high_drain_pct,
    )


class LiquidityDrainDetector(Detector):
    """High above ``high_drain_pct``, medium otherwise."""

    detector_id = "liquidity_drain"
    category = AnomalyCategory.LIQUIDITY_DRAIN

    def __init__(self, params: LiquidityDrainParams) -> None:
        if params.high_drain_pct < params.min_drain_pct:
            raise ValueError("high_drain_pct must be at least min_drain_pct")
        self.params = params

    def detect(self, signal: MarketSignal) -> AnomalyEvent | None:
        drains = [c for c in signal.pool_changes if c.drain_pct >= self.params.min_drain_pct]
        if not drains:
            return None
        change = max(drains, key=lambda item: (item.drain_pct, item.pool))
        if change.drain_pct > self.params.high_drain_pct:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        return AnomalyEvent(
            id=new_anomaly_id("liquidity"),
            category=self.category,
            severity=severity,
            title="Liquidity Pool Drain Alert",
            description=(
                f"{change.pool} pool liquidity decreased by {change.drain_pct:.0f}% "
                f"in {change.timeframe}"
            ),
            created_at=signal.observed_at,
            metadata={
                "pool": change.pool,
                "drainPercentage": change.drain_pct,
                "timeframe": change.timeframe,
            },
        )
