from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from chainwatch.bus import EventBus
from chainwatch.domain.events import LifecycleEvent, LifecycleEventType
from chainwatch.domain.models import UnlockEvent, UnlockKind, UnlockStatus
from chainwatch.errors import UnknownEvent
from chainwatch.logging.logger import HumanLogger
from chainwatch.matcher import UnlockMatcher, is_due, is_overdue
from chainwatch.state import InMemoryEventStore

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
TOLERANCE = timedelta(minutes=10)


class FixedHashSource:
    def __init__(self, tx_hash: str | None) -> None:
        self.tx_hash = tx_hash
        self.calls: list[str] = []

    def confirmation_for(self, event: UnlockEvent) -> str | None:
        self.calls.append(event.id)
        return self.tx_hash


class CountingHashSource:
    def __init__(self) -> None:
        self.counter = 0

    def confirmation_for(self, event: UnlockEvent) -> str | None:
        self.counter += 1
        return f"0x{self.counter:026x}"


def _unlock(event_id: str, offset: timedelta) -> UnlockEvent:
    return UnlockEvent(
        id=event_id,
        scheduled_at=NOW + offset,
        token="SEI",
        amount=100_000.0,
        usd_value=50_000.0,
        kind=UnlockKind.LINEAR,
    )


def _matcher(
    store: InMemoryEventStore,
    source: object | None = None,
    bus: EventBus | None = None,
) -> UnlockMatcher:
    return UnlockMatcher(
        store,
        confirmation_source=source or CountingHashSource(),  # type: ignore[arg-type]
        tolerance=TOLERANCE,
        bus=bus,
        clock=lambda: NOW,
    )


def test_due_unlock_is_confirmed_once_across_ticks() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("e1", timedelta(minutes=2)))
    matcher = _matcher(store)

    first = matcher.tick()
    event = store.find_unlock(lambda e: e.id == "e1")
    assert first.confirmed == ["e1"]
    assert event is not None
    assert event.status == UnlockStatus.CONFIRMED
    assert event.tx_hash is not None

    second = matcher.tick()
    again = store.find_unlock(lambda e: e.id == "e1")
    assert second.confirmed == []
    assert again is not None
    assert again.tx_hash == event.tx_hash
    assert len(store.list_dedup()) == 1


def test_unlock_outside_window_stays_pending() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("e2", timedelta(hours=1)))

    report = _matcher(store).tick()

    event = store.find_unlock(lambda e: e.id == "e2")
    assert report.confirmed == []
    assert event is not None
    assert event.status == UnlockStatus.PENDING


@pytest.mark.parametrize(
    ("offset", "expected"),
    [
        (timedelta(minutes=-10), True),
        (timedelta(minutes=10), True),
        (timedelta(0), True),
        (timedelta(minutes=-10, seconds=-1), False),
        (timedelta(minutes=10, seconds=1), False),
    ],
)
def test_window_bounds_are_inclusive(offset: timedelta, expected: bool) -> None:
    assert is_due(_unlock("e1", offset), NOW, TOLERANCE) is expected


def test_confirmed_events_are_never_due_or_overdue() -> None:
    confirmed = _unlock("e1", timedelta(minutes=-30)).confirmed("0xabc")

    assert not is_due(confirmed, NOW, TOLERANCE)
    assert not is_overdue(confirmed, NOW, TOLERANCE)


def test_replayed_tx_hash_is_a_no_op() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("e1", timedelta(minutes=1)))
    store.add_unlock(_unlock("e2", timedelta(minutes=2)))

    report = _matcher(store, FixedHashSource("0xsame")).tick()

    assert report.confirmed == ["e1"]
    assert report.duplicates == ["e2"]
    pending = store.find_unlock(lambda e: e.id == "e2")
    assert pending is not None
    assert pending.status == UnlockStatus.PENDING


def test_unobserved_confirmation_leaves_event_pending() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("e1", timedelta(minutes=1)))

    report = _matcher(store, FixedHashSource(None)).tick()

    assert report.unobserved == ["e1"]
    assert store.list_dedup() == []


def test_overdue_unlocks_are_reported_not_confirmed() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("late", timedelta(minutes=-30)))
    source = FixedHashSource("0xabc")
    matcher = _matcher(store, source)

    first = matcher.tick()
    second = matcher.tick()

    assert first.overdue == ["late"]
    assert second.overdue == ["late"]
    assert first.confirmed == []
    assert source.calls == []


def test_confirmation_publishes_lifecycle_event() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("e1", timedelta(0)))
    bus = EventBus(run_id="run-1")
    received: list[LifecycleEvent] = []
    bus.subscribe(received.append)

    _matcher(store, bus=bus).tick()

    assert [event.event_type for event in received] == [LifecycleEventType.UNLOCK_CONFIRMED]
    assert received[0].payload["id"] == "e1"
    assert received[0].payload["status"] == "confirmed"


def test_manual_confirm_ignores_window_and_is_idempotent() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("e1", timedelta(days=5)))
    matcher = _matcher(store)

    confirmed = matcher.confirm("e1", tx_hash="0xmanual")
    assert confirmed is not None
    assert confirmed.tx_hash == "0xmanual"

    assert matcher.confirm("e1", tx_hash="0xother") is None
    assert not store.has_seen("0xother")

    with pytest.raises(UnknownEvent):
        matcher.confirm("missing")


def test_negative_tolerance_is_rejected() -> None:
    with pytest.raises(ValueError):
        UnlockMatcher(InMemoryEventStore(), tolerance=timedelta(minutes=-1))


class StaleRecorder(HumanLogger):
    def __init__(self) -> None:
        super().__init__()
        self.stale_ids: list[str] = []

    def stale(self, event: UnlockEvent, now: datetime) -> None:
        self.stale_ids.append(event.id)


def test_stale_line_is_logged_once_and_forgotten_after_manual_confirm() -> None:
    store = InMemoryEventStore()
    store.add_unlock(_unlock("late-1", timedelta(minutes=-30)))
    store.add_unlock(_unlock("late-2", timedelta(minutes=-40)))
    human_logger = StaleRecorder()
    matcher = UnlockMatcher(
        store,
        confirmation_source=CountingHashSource(),
        tolerance=TOLERANCE,
        human_logger=human_logger,
        clock=lambda: NOW,
    )

    matcher.tick()
    matcher.tick()
    matcher.confirm("late-1", tx_hash="0xmanual")
    report = matcher.tick()

    assert sorted(human_logger.stale_ids) == ["late-1", "late-2"]
    assert report.overdue == ["late-2"]
    assert matcher._reported_overdue == {"late-2"}
