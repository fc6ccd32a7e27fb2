"""Anomaly generator: evaluates every detector once per tick."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from chainwatch.bus import EventBus
from chainwatch.detectors.base import Detector
from chainwatch.domain.events import LifecycleEventType
from chainwatch.domain.models import AnomalyEvent
from chainwatch.errors import DetectorFailure
from chainwatch.logging.logger import HumanLogger
from chainwatch.signals import MarketSignal, SignalSource, SyntheticSignalSource
from chainwatch.state.store import EventStore


@dataclass(frozen=True)
class GenerationReport:
    """Outcome of one generator tick."""

    observed_at: datetime
    inserted: list[str] = field(default_factory=list)
    evicted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def run_detector(detector: Detector, signal: MarketSignal) -> AnomalyEvent | None:
    """Evaluate one detector, wrapping any error in :class:`DetectorFailure`."""
    try:
        candidate = detector.detect(signal)
    except Exception as exc:
        raise DetectorFailure(detector.detector_id, exc) from exc
    if candidate is not None and candidate.category != detector.category:
        raise DetectorFailure(
            detector.detector_id,
            ValueError(f"emitted category '{candidate.category}', expected '{detector.category}'"),
        )
    return candidate


class AnomalyGenerator:
    """Periodic unit of work persisting detector candidates to the ring buffer."""

    job_name = "anomaly_generator"

    def __init__(
        self,
        store: EventStore,
        detectors: Sequence[Detector],
        signal_source: SignalSource | None = None,
        bus: EventBus | None = None,
        human_logger: HumanLogger | None = None,
    ) -> None:
        self.store = store
        self.detectors = list(detectors)
        self.signal_source = signal_source or SyntheticSignalSource()
        self.human_logger = human_logger or HumanLogger()
        self.bus = bus or EventBus(human_logger=self.human_logger)

    def tick(self, signal: MarketSignal | None = None) -> GenerationReport:
        """Run every detector against one signal and persist what fired."""
        current = signal if signal is not None else self.signal_source.next_signal()
        report = GenerationReport(observed_at=current.observed_at)
        candidates: list[AnomalyEvent] = []
        for detector in self.detectors:
            try:
                candidate = run_detector(detector, current)
            except DetectorFailure as exc:
                report.failed[exc.detector_id] = str(exc)
                self.human_logger.detector_failed(exc.detector_id, str(exc))
                continue
            if candidate is not None:
                candidates.append(candidate)

        for candidate in candidates:
            evicted_ids = [event.id for event in self.store.insert_anomaly(candidate)]
            report.evicted.extend(evicted_ids)
            if candidate.id in evicted_ids:
                # older than the whole window, so it never became visible
                continue
            report.inserted.append(candidate.id)
            self.human_logger.anomaly(candidate)
            self.bus.publish(LifecycleEventType.ANOMALY_DETECTED, candidate.to_record())
        return report
