"""Unlock matcher: confirms pending unlocks inside the tolerance window.

Each tick selects pending unlocks whose ``scheduled_at`` lies within
``[now - tolerance, now + tolerance]`` and confirms them through
:meth:`EventStore.confirm_unlock`, which records the tx hash in the dedup
ledger and flips the status in one atomic step. A replayed tx hash or an
event that is already confirmed is a logged no-op. Pending unlocks whose
window has fully passed are reported as overdue instead of being retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from chainwatch.bus import EventBus
from chainwatch.clock import Clock, utc_now
from chainwatch.confirmations import ConfirmationSource, RandomTxHashSource
from chainwatch.domain.events import LifecycleEventType
from chainwatch.domain.models import DedupRecord, UnlockEvent, ensure_utc
from chainwatch.errors import DuplicateConfirmation, UnknownEvent
from chainwatch.logging.logger import HumanLogger
from chainwatch.state.store import EventStore

DEFAULT_TOLERANCE = timedelta(minutes=10)


def is_due(event: UnlockEvent, now: datetime, tolerance: timedelta) -> bool:
    """Return true for pending events inside the symmetric window (inclusive)."""
    if not event.is_pending:
        return False
    return now - tolerance <= event.scheduled_at <= now + tolerance


def is_overdue(event: UnlockEvent, now: datetime, tolerance: timedelta) -> bool:
    """Return true for pending events whose window closed without a match."""
    return event.is_pending and event.scheduled_at < now - tolerance


@dataclass(frozen=True)
class MatchReport:
    """Outcome of one matcher tick."""

    checked_at: datetime
    confirmed: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    unobserved: list[str] = field(default_factory=list)
    overdue: list[str] = field(default_factory=list)


class UnlockMatcher:
    """Periodic unit of work transitioning due unlocks to confirmed."""

    job_name = "unlock_matcher"

    def __init__(
        self,
        store: EventStore,
        confirmation_source: ConfirmationSource | None = None,
        tolerance: timedelta = DEFAULT_TOLERANCE,
        bus: EventBus | None = None,
        human_logger: HumanLogger | None = None,
        clock: Clock = utc_now,
    ) -> None:
        if tolerance < timedelta(0):
            raise ValueError("tolerance must not be negative")
        self.store = store
        self.confirmation_source = confirmation_source or RandomTxHashSource()
        self.tolerance = tolerance
        self.human_logger = human_logger or HumanLogger()
        self.bus = bus or EventBus(human_logger=self.human_logger)
        self.clock = clock
        self._reported_overdue: set[str] = set()

    def tick(self, now: datetime | None = None) -> MatchReport:
        """Run one matching pass."""
        current = ensure_utc(now) if now is not None else self.clock()
        report = MatchReport(checked_at=current)
        due = self.store.list_unlocks(lambda event: is_due(event, current, self.tolerance))
        for event in due:
            tx_hash = self.confirmation_source.confirmation_for(event)
            if tx_hash is None:
                report.unobserved.append(event.id)
                continue
            if self._confirm(event, tx_hash, current) is None:
                report.duplicates.append(event.id)
            else:
                report.confirmed.append(event.id)

        overdue = self.store.list_unlocks(
            lambda event: is_overdue(event, current, self.tolerance)
        )
        for event in overdue:
            report.overdue.append(event.id)
            if event.id not in self._reported_overdue:
                self.human_logger.stale(event, current)
        self._reported_overdue = set(report.overdue)
        return report

    def confirm(
        self,
        event_id: str,
        tx_hash: str | None = None,
        now: datetime | None = None,
    ) -> UnlockEvent | None:
        """Confirm one unlock outside the window; returns None when already done."""
        current = ensure_utc(now) if now is not None else self.clock()
        event = self.store.find_unlock(lambda candidate: candidate.id == event_id)
        if event is None:
            raise UnknownEvent(f"unknown unlock id: {event_id}")
        if not event.is_pending:
            self.human_logger.duplicate(event.id, event.tx_hash, "already confirmed")
            return None
        token = tx_hash or self.confirmation_source.confirmation_for(event)
        if token is None:
            raise ValueError(f"no confirmation available for unlock {event_id}")
        return self._confirm(event, token, current)

    def _confirm(self, event: UnlockEvent, tx_hash: str, now: datetime) -> UnlockEvent | None:
        try:
            confirmed = self.store.confirm_unlock(
                event.id,
                DedupRecord(tx_hash=tx_hash, seen_at=now),
            )
        except DuplicateConfirmation as exc:
            self.human_logger.duplicate(event.id, tx_hash, str(exc))
            return None
        if confirmed is None:
            self.human_logger.duplicate(event.id, tx_hash, "tx hash already processed")
            return None
        self.human_logger.unlock_confirmed(confirmed)
        self.bus.publish(LifecycleEventType.UNLOCK_CONFIRMED, confirmed.to_record())
        return confirmed
