"""Unlock ingestion: fixture seeding and the simulated off-chain fetch."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from chainwatch.bus import EventBus
from chainwatch.clock import Clock, utc_now
from chainwatch.config import DEFAULT_UNLOCK_TOKENS
from chainwatch.domain.events import LifecycleEventType
from chainwatch.domain.models import UnlockEvent, UnlockKind, ensure_utc
from chainwatch.logging.logger import HumanLogger
from chainwatch.state.store import EventStore

# id, offset from seeding time, token, amount, usd value, kind
FIXTURE_UNLOCKS: list[tuple[str, timedelta, str, float, float, UnlockKind]] = [
    ("event-1", timedelta(days=7), "SEI", 21_500_000, 15_000_000, UnlockKind.CLIFF),
    ("event-2", timedelta(days=11, hours=4), "ATOM", 500_000, 4_500_000, UnlockKind.LINEAR),
    ("event-3", timedelta(days=16), "OSMO", 1_200_000, 800_000, UnlockKind.CLIFF),
    ("event-4", timedelta(days=21, hours=1), "SEI", 10_000_000, 7_000_000, UnlockKind.LINEAR),
    ("event-5", timedelta(days=38, hours=6), "SEI", 30_000_000, 21_000_000, UnlockKind.CLIFF),
    # due immediately, exercises the matcher on a fresh run
    ("event-6", timedelta(minutes=2), "TEST", 100_000, 50_000, UnlockKind.LINEAR),
]


def seed_unlocks(store: EventStore, now: datetime | None = None) -> list[UnlockEvent]:
    """Load the demo fixtures, skipping ids already present."""
    current = ensure_utc(now) if now is not None else utc_now()
    seeded: list[UnlockEvent] = []
    for event_id, offset, token, amount, usd_value, kind in FIXTURE_UNLOCKS:
        if store.find_unlock(lambda event, wanted=event_id: event.id == wanted) is not None:
            continue
        event = UnlockEvent(
            id=event_id,
            scheduled_at=current + offset,
            token=token,
            amount=amount,
            usd_value=usd_value,
            kind=kind,
        )
        store.add_unlock(event)
        seeded.append(event)
    return seeded


class UnlockIngestor:
    """Simulates fetching upcoming unlock schedules from an off-chain API.

    One unlock per token is generated 1-30 days ahead. A pending unlock for the
    same token on the same calendar day is updated in place; otherwise a new
    pending event is inserted.
    """

    def __init__(
        self,
        store: EventStore,
        tokens: list[str] | None = None,
        seed: int | None = None,
        bus: EventBus | None = None,
        human_logger: HumanLogger | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.tokens = [token.strip().upper() for token in (tokens or DEFAULT_UNLOCK_TOKENS)]
        self.rng = random.Random(seed)
        self.human_logger = human_logger or HumanLogger()
        self.bus = bus or EventBus(human_logger=self.human_logger)
        self.clock = clock

    def run_once(self, now: datetime | None = None) -> list[UnlockEvent]:
        current = ensure_utc(now) if now is not None else self.clock()
        results: list[UnlockEvent] = []
        for token in self.tokens:
            scheduled_at = self._scheduled_date(current)
            patch = {
                "token": token,
                "amount": float(self.rng.randint(100_000, 10_099_999)),
                "usd_value": float(self.rng.randint(100_000, 5_099_999)),
                "scheduled_at": scheduled_at,
            }
            kind = UnlockKind.CLIFF if self.rng.random() > 0.5 else UnlockKind.LINEAR

            def same_day(event: UnlockEvent, wanted: str = token) -> bool:
                return (
                    event.is_pending
                    and event.token == wanted
                    and event.scheduled_at.date() == scheduled_at.date()
                )

            existing = self.store.find_unlock(same_day)
            stored = self.store.upsert_unlock(
                same_day,
                patch if existing is not None else {**patch, "kind": kind},
                allow_insert=True,
            )
            if stored is None:
                continue
            created = existing is None
            self.human_logger.unlock_ingested(stored, created)
            self.bus.publish(
                LifecycleEventType.UNLOCK_INGESTED,
                {**stored.to_record(), "created": created},
            )
            results.append(stored)
        return results

    def _scheduled_date(self, now: datetime) -> datetime:
        day = now + timedelta(days=self.rng.randint(1, 30))
        return day.replace(
            hour=self.rng.randint(0, 23),
            minute=self.rng.randint(0, 59),
            second=0,
            microsecond=0,
        )
