"""Read-only query facade for presentation collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from chainwatch.clock import Clock, relative_time, utc_now
from chainwatch.domain.models import (
    AnomalyCategory,
    AnomalyEvent,
    Severity,
    UnlockEvent,
    ensure_utc,
)
from chainwatch.matcher import DEFAULT_TOLERANCE, is_overdue
from chainwatch.state.store import EventStore

DEFAULT_ANOMALY_LIMIT = 20
DEFAULT_UPCOMING_DAYS = 30


class EventQuery:
    """Lists and filters events; never writes to the store."""

    def __init__(
        self,
        store: EventStore,
        tolerance: timedelta = DEFAULT_TOLERANCE,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.tolerance = tolerance
        self.clock = clock

    def list_anomalies(
        self,
        limit: int = DEFAULT_ANOMALY_LIMIT,
        severity: Severity | str | None = None,
        category: AnomalyCategory | str | None = None,
    ) -> list[AnomalyEvent]:
        """Return the newest ``limit`` anomalies, then apply the filters."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        wanted_severity = Severity(severity) if severity else None
        wanted_category = AnomalyCategory(category) if category else None
        events = self.store.list_anomalies(limit)
        if wanted_severity is not None:
            events = [event for event in events if event.severity == wanted_severity]
        if wanted_category is not None:
            events = [event for event in events if event.category == wanted_category]
        return events

    def list_unlocks(self, from_time: datetime, to_time: datetime) -> list[UnlockEvent]:
        """Return unlocks scheduled inside ``[from_time, to_time]``."""
        start = ensure_utc(from_time)
        end = ensure_utc(to_time)
        if end < start:
            raise ValueError("to_time must not be before from_time")
        return self.store.list_unlocks(lambda event: start <= event.scheduled_at <= end)

    def upcoming_unlocks(
        self,
        days: int = DEFAULT_UPCOMING_DAYS,
        now: datetime | None = None,
    ) -> list[UnlockEvent]:
        if days < 0:
            raise ValueError("days must not be negative")
        current = self._now(now)
        return self.list_unlocks(current, current + timedelta(days=days))

    def next_unlock(self, token: str, now: datetime | None = None) -> UnlockEvent | None:
        """Earliest pending unlock for ``token`` at or after now; ties by id."""
        symbol = token.strip().upper()
        current = self._now(now)
        matches = self.store.list_unlocks(
            lambda event: event.is_pending
            and event.token == symbol
            and event.scheduled_at >= current
        )
        return matches[0] if matches else None

    def overdue_unlocks(self, now: datetime | None = None) -> list[UnlockEvent]:
        """Pending unlocks whose tolerance window passed without confirmation."""
        current = self._now(now)
        return self.store.list_unlocks(lambda event: is_overdue(event, current, self.tolerance))

    def anomaly_payload(self, event: AnomalyEvent, now: datetime | None = None) -> dict[str, Any]:
        """Dashboard alert shape: severity as ``type``, detector as ``category``."""
        return {
            "id": event.id,
            "type": event.severity.value,
            "title": event.title,
            "description": event.description,
            "time": relative_time(event.created_at, self._now(now)),
            "category": event.category.value,
            "walletAddress": event.wallet_address,
            "amount": event.amount,
            "token": event.token,
            "metadata": dict(event.metadata),
        }

    def unlock_payload(self, event: UnlockEvent) -> dict[str, Any]:
        record = event.to_record()
        record["unlockDate"] = record.pop("scheduled_at")
        return record

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self.clock()
