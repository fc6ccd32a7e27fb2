"""Trading volume spike detector."""

from __future__ import annotations

from dataclasses import dataclass

from chainwatch.config import Settings
from chainwatch.detectors.base import Detector, new_anomaly_id
from chainwatch.domain.models import AnomalyCategory, AnomalyEvent, Severity
from chainwatch.signals import MarketSignal


@dataclass(frozen=True)
class VolumeSpikeParams:
    """Percentage thresholds for volume spikes."""

    min_spike_pct: float = 200.0
    high_spike_pct: float = 400.0


def default_volume_spike_params() -> VolumeSpikeParams:
    return VolumeSpikeParams()


def params_from_settings(settings: Settings) -> VolumeSpikeParams:
    return VolumeSpikeParams(
        min_spike_pct=settings.volume_min_spike_pct,
        high_spike_pct=settings.volume_high_spike_pct,
    )


class VolumeSpikeDetector(Detector):
    """High above ``high_spike_pct``, medium otherwise."""

    detector_id = "volume_spike"
    category = AnomalyCategory.VOLUME_SPIKE

    def __init__(self, params: VolumeSpikeParams) -> None:
        if params.high_spike_pct < params.min_spike_pct:
            raise ValueError("high_spike_pct must be at least min_spike_pct")
        self.params = params

    def detect(self, signal: MarketSignal) -> AnomalyEvent | None:
        spikes = [c for c in signal.volume_changes if c.spike_pct >= self.params.min_spike_pct]
        if not spikes:
            return None
        change = max(spikes, key=lambda item: (item.spike_pct, item.token))
        if change.spike_pct > self.params.high_spike_pct:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        return AnomalyEvent(
            id=new_anomaly_id("volume"),
            category=self.category,
            severity=severity,
            title="Unusual Volume Spike",
            description=(
                f"{change.token} trading volume increased by {change.spike_pct:.0f}% "
                f"in the last {change.timeframe}"
            ),
            created_at=signal.observed_at,
            token=change.token,
            metadata={"spikePercentage": change.spike_pct, "timeframe": change.timeframe},
        )
