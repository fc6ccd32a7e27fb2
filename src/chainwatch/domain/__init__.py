"""Domain models and event types."""

from .events import LifecycleEvent, LifecycleEventType
from .models import (
    AnomalyCategory,
    AnomalyEvent,
    DedupRecord,
    Severity,
    UnlockEvent,
    UnlockKind,
    UnlockStatus,
)

__all__ = [
    "AnomalyCategory",
    "AnomalyEvent",
    "DedupRecord",
    "LifecycleEvent",
    "LifecycleEventType",
    "Severity",
    "UnlockEvent",
    "UnlockKind",
    "UnlockStatus",
]
