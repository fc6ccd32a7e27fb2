"""Structured lifecycle event stream models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class LifecycleEventType(StrEnum):
    """Signals published when the store changes."""

    RUN_STARTED = "run_started"
    UNLOCK_INGESTED = "unlock_ingested"
    UNLOCK_CONFIRMED = "unlock_confirmed"
    ANOMALY_DETECTED = "anomaly_detected"
    TICK_FAILED = "tick_failed"


@dataclass(frozen=True)
class LifecycleEvent:
    """Single event fanned out to subscribers and written to JSONL."""

    run_id: str
    event_type: LifecycleEventType
    payload: dict[str, Any] = field(default_factory=dict)
    ts: str = field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    def to_record(self) -> dict[str, Any]:
        """Convert event to serializable dict."""
        return {
            "ts": self.ts,
            "run_id": self.run_id,
            "event_type": self.event_type.value,
            "payload": self.payload,
        }
