"""Event store interfaces and implementations."""

from .memory_store import InMemoryEventStore
from .sqlite_store import SqliteEventStore
from .store import DEFAULT_ANOMALY_CAPACITY, EventStore, UnlockPredicate

__all__ = [
    "DEFAULT_ANOMALY_CAPACITY",
    "EventStore",
    "InMemoryEventStore",
    "SqliteEventStore",
    "UnlockPredicate",
]
