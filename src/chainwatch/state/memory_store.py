"""In-process event store used by tests and single-node runs."""

from __future__ import annotations

import threading
from collections.abc import Collection, Mapping
from typing import Any

from chainwatch.domain.models import AnomalyEvent, DedupRecord, UnlockEvent
from chainwatch.errors import DuplicateConfirmation, InvalidTransition, UnknownEvent
from chainwatch.state.store import (
    DEFAULT_ANOMALY_CAPACITY,
    UnlockPredicate,
    match_all,
    unlock_sort_key,
)


def next_unlock_id(existing_ids: Collection[str]) -> str:
    """Return the first free ``event-N`` id, starting after the current count."""
    number = len(existing_ids) + 1
    while f"event-{number}" in existing_ids:
        number += 1
    return f"event-{number}"


def build_unlock_from_patch(patch: Mapping[str, Any], next_id: str) -> UnlockEvent:
    """Create a pending unlock for an upsert that matched nothing."""
    fields = dict(patch)
    if fields.get("tx_hash") or str(fields.get("status", "pending")).lower() != "pending":
        raise InvalidTransition("ingested unlocks must be pending without a tx_hash")
    fields.setdefault("id", next_id)
    fields.setdefault("amount", 0.0)
    fields.setdefault("usd_value", 0.0)
    fields.setdefault("kind", "linear")
    missing = [name for name in ("scheduled_at", "token") if name not in fields]
    if missing:
        raise ValueError(f"cannot insert unlock without: {', '.join(missing)}")
    return UnlockEvent.from_record(fields)


class InMemoryEventStore:
    """Dict-backed store; every mutation runs under one re-entrant lock."""

    def __init__(self, anomaly_capacity: int = DEFAULT_ANOMALY_CAPACITY) -> None:
        if anomaly_capacity <= 0:
            raise ValueError("anomaly_capacity must be positive")
        self.anomaly_capacity = anomaly_capacity
        self._lock = threading.RLock()
        self._unlocks: dict[str, UnlockEvent] = {}
        self._dedup: dict[str, DedupRecord] = {}
        # (created_at, insertion sequence, event), newest first
        self._anomalies: list[tuple[Any, int, AnomalyEvent]] = []
        self._anomaly_ids: set[str] = set()
        self._sequence = 0

    def add_unlock(self, event: UnlockEvent) -> None:
        if not event.is_pending:
            raise InvalidTransition(f"unlock {event.id} must be ingested as pending")
        with self._lock:
            if event.id in self._unlocks:
                raise ValueError(f"duplicate unlock id: {event.id}")
            self._unlocks[event.id] = event

    def list_unlocks(self, predicate: UnlockPredicate | None = None) -> list[UnlockEvent]:
        check = predicate or match_all
        with self._lock:
            snapshot = list(self._unlocks.values())
        return sorted((event for event in snapshot if check(event)), key=unlock_sort_key)

    def find_unlock(self, predicate: UnlockPredicate) -> UnlockEvent | None:
        with self._lock:
            for event in self._unlocks.values():
                if predicate(event):
                    return event
        return None

    def upsert_unlock(
        self,
        predicate: UnlockPredicate,
        patch: Mapping[str, Any],
        allow_insert: bool = False,
    ) -> UnlockEvent | None:
        with self._lock:
            current = self.find_unlock(predicate)
            if current is not None:
                updated = current.apply_patch(patch)
                self._unlocks[current.id] = updated
                return updated
            if not allow_insert:
                return None
            created = build_unlock_from_patch(patch, next_unlock_id(self._unlocks))
            self.add_unlock(created)
            return created

    def append_dedup(self, record: DedupRecord) -> bool:
        with self._lock:
            if record.tx_hash in self._dedup:
                return False
            self._dedup[record.tx_hash] = record
            return True

    def has_seen(self, tx_hash: str) -> bool:
        with self._lock:
            return tx_hash in self._dedup

    def list_dedup(self) -> list[DedupRecord]:
        with self._lock:
            return list(self._dedup.values())

    def confirm_unlock(self, event_id: str, record: DedupRecord) -> UnlockEvent | None:
        with self._lock:
            current = self._unlocks.get(event_id)
            if current is None:
                raise UnknownEvent(f"unknown unlock id: {event_id}")
            if not self.append_dedup(record):
                return None
            try:
                confirmed = current.confirmed(record.tx_hash)
            except DuplicateConfirmation:
                del self._dedup[record.tx_hash]
                raise
            self._unlocks[event_id] = confirmed
            return confirmed

    def insert_anomaly(self, event: AnomalyEvent) -> list[AnomalyEvent]:
        with self._lock:
            if event.id in self._anomaly_ids:
                raise ValueError(f"duplicate anomaly id: {event.id}")
            self._sequence += 1
            self._anomalies.append((event.created_at, self._sequence, event))
            self._anomalies.sort(key=lambda item: (item[0], item[1]), reverse=True)
            evicted = [item[2] for item in self._anomalies[self.anomaly_capacity :]]
            del self._anomalies[self.anomaly_capacity :]
            self._anomaly_ids.add(event.id)
            for old in evicted:
                self._anomaly_ids.discard(old.id)
            return evicted

    def list_anomalies(self, limit: int | None = None) -> list[AnomalyEvent]:
        with self._lock:
            events = [item[2] for item in self._anomalies]
        if limit is None:
            return events
        return events[: max(0, limit)]

    def close(self) -> None:
        return None
