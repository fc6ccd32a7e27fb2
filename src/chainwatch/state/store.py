"""Event store contract shared by matcher, generator and query facade."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from chainwatch.domain.models import AnomalyEvent, DedupRecord, UnlockEvent

UnlockPredicate = Callable[[UnlockEvent], bool]

DEFAULT_ANOMALY_CAPACITY = 50


def match_all(event: UnlockEvent) -> bool:
    _ = event
    return True


def unlock_sort_key(event: UnlockEvent) -> tuple[Any, str]:
    """Deterministic unlock ordering: schedule time, then id."""
    return (event.scheduled_at, event.id)


class EventStore(Protocol):
    """Persistence API for unlock events, the dedup ledger and anomalies."""

    anomaly_capacity: int

    def add_unlock(self, event: UnlockEvent) -> None:
        """Insert a new pending event supplied by ingestion."""

    def list_unlocks(self, predicate: UnlockPredicate | None = None) -> list[UnlockEvent]:
        """Return matching events ordered by scheduled time, then id."""

    def find_unlock(self, predicate: UnlockPredicate) -> UnlockEvent | None:
        """Return the first matching event, if any."""

    def upsert_unlock(
        self,
        predicate: UnlockPredicate,
        patch: Mapping[str, Any],
        allow_insert: bool = False,
    ) -> UnlockEvent | None:
        """Patch the first match, or insert from the patch when allowed."""

    def append_dedup(self, record: DedupRecord) -> bool:
        """Record a tx hash; return false when it was already present."""

    def has_seen(self, tx_hash: str) -> bool:
        """Return true when the tx hash is in the ledger."""

    def list_dedup(self) -> list[DedupRecord]:
        """Return ledger records in insertion order."""

    def confirm_unlock(self, event_id: str, record: DedupRecord) -> UnlockEvent | None:
        """Dedup the tx hash and confirm the event in one atomic step."""

    def insert_anomaly(self, event: AnomalyEvent) -> list[AnomalyEvent]:
        """Insert an anomaly and return whatever was evicted."""

    def list_anomalies(self, limit: int | None = None) -> list[AnomalyEvent]:
        """Return retained anomalies, newest first."""

    def close(self) -> None:
        """Close persistence resources."""
