from __future__ import annotations

from datetime import UTC, datetime, timedelta

from chainwatch.bus import EventBus
from chainwatch.domain.events import LifecycleEvent, LifecycleEventType
from chainwatch.domain.models import DedupRecord, UnlockStatus
from chainwatch.ingest import FIXTURE_UNLOCKS, UnlockIngestor, seed_unlocks
from chainwatch.state import InMemoryEventStore

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def test_seed_unlocks_loads_fixtures_once() -> None:
    store = InMemoryEventStore()

    first = seed_unlocks(store, NOW)
    second = seed_unlocks(store, NOW)

    assert [event.id for event in first] == [item[0] for item in FIXTURE_UNLOCKS]
    assert second == []
    assert all(event.status == UnlockStatus.PENDING for event in store.list_unlocks())
    test_event = store.find_unlock(lambda event: event.token == "TEST")
    assert test_event is not None
    assert test_event.scheduled_at == NOW + timedelta(minutes=2)


def test_ingestor_inserts_one_pending_unlock_per_token() -> None:
    store = InMemoryEventStore()
    ingestor = UnlockIngestor(store, tokens=["sei", "atom"], seed=1, clock=lambda: NOW)

    stored = ingestor.run_once()

    assert [event.token for event in stored] == ["SEI", "ATOM"]
    assert {event.id for event in store.list_unlocks()} == {"event-1", "event-2"}
    for event in stored:
        assert event.is_pending
        assert 1 <= (event.scheduled_at.date() - NOW.date()).days <= 30
        assert event.scheduled_at.second == 0


def test_ingestor_updates_same_day_unlock_in_place() -> None:
    store = InMemoryEventStore()
    first = UnlockIngestor(store, tokens=["SEI"], seed=3, clock=lambda: NOW).run_once()
    # same seed reproduces the same calendar day for the token
    second = UnlockIngestor(store, tokens=["SEI"], seed=3, clock=lambda: NOW).run_once()

    assert len(store.list_unlocks()) == 1
    assert first[0].id == second[0].id
    assert first[0].kind == second[0].kind


def test_ingestor_never_touches_confirmed_unlocks() -> None:
    store = InMemoryEventStore()
    first = UnlockIngestor(store, tokens=["SEI"], seed=3, clock=lambda: NOW).run_once()
    store.confirm_unlock(first[0].id, DedupRecord("0xabc", NOW))

    UnlockIngestor(store, tokens=["SEI"], seed=3, clock=lambda: NOW).run_once()

    unlocks = store.list_unlocks()
    assert len(unlocks) == 2
    confirmed = [event for event in unlocks if event.status == UnlockStatus.CONFIRMED]
    assert [event.tx_hash for event in confirmed] == ["0xabc"]


def test_ingestor_publishes_created_flag() -> None:
    store = InMemoryEventStore()
    bus = EventBus(run_id="run-1")
    received: list[LifecycleEvent] = []
    bus.subscribe(received.append)

    UnlockIngestor(store, tokens=["SEI"], seed=3, bus=bus, clock=lambda: NOW).run_once()
    UnlockIngestor(store, tokens=["SEI"], seed=3, bus=bus, clock=lambda: NOW).run_once()

    assert [event.event_type for event in received] == [
        LifecycleEventType.UNLOCK_INGESTED,
        LifecycleEventType.UNLOCK_INGESTED,
    ]
    assert [event.payload["created"] for event in received] == [True, False]
