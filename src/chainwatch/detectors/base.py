"""Detector contract producing at most one anomaly per signal."""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import uuid4

from chainwatch.domain.models import AnomalyCategory, AnomalyEvent
from chainwatch.signals import MarketSignal


def new_anomaly_id(prefix: str) -> str:
    """Generate a unique anomaly id such as ``whale-3f2a...``."""
    return f"{prefix}-{uuid4().hex[:16]}"


class Detector(ABC):
    """Base detector interface; implementations must not touch the store."""

    detector_id: str
    category: AnomalyCategory

    @abstractmethod
    def detect(self, signal: MarketSignal) -> AnomalyEvent | None:
        """Return a candidate anomaly, or None when nothing fired."""
