from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from chainwatch.domain.models import (
    AnomalyCategory,
    AnomalyEvent,
    Severity,
    UnlockEvent,
    UnlockKind,
    UnlockStatus,
    parse_timestamp,
)
from chainwatch.errors import DuplicateConfirmation, InvalidTransition

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def _unlock(**overrides: object) -> UnlockEvent:
    fields: dict[str, object] = {
        "id": "event-1",
        "scheduled_at": NOW,
        "token": "sei",
        "amount": 1_000.0,
        "usd_value": 700.0,
        "kind": UnlockKind.CLIFF,
    }
    fields.update(overrides)
    return UnlockEvent(**fields)  # type: ignore[arg-type]


def test_unlock_event_normalizes_token_and_timezone() -> None:
    naive = datetime(2025, 1, 1, 12, 0)
    event = _unlock(scheduled_at=naive, kind="linear")

    assert event.token == "SEI"
    assert event.scheduled_at == NOW
    assert event.kind == UnlockKind.LINEAR
    assert event.status == UnlockStatus.PENDING
    assert event.is_pending


def test_unlock_event_requires_tx_hash_exactly_when_confirmed() -> None:
    with pytest.raises(ValueError):
        _unlock(status=UnlockStatus.CONFIRMED)
    with pytest.raises(ValueError):
        _unlock(tx_hash="0xabc")
    with pytest.raises(ValueError):
        _unlock(amount=-1.0)


def test_confirmed_sets_hash_once() -> None:
    confirmed = _unlock().confirmed("0xabc")

    assert confirmed.status == UnlockStatus.CONFIRMED
    assert confirmed.tx_hash == "0xabc"
    with pytest.raises(DuplicateConfirmation):
        confirmed.confirmed("0xdef")


def test_apply_patch_updates_mutable_fields_only() -> None:
    event = _unlock()
    later = NOW + timedelta(days=1)

    patched = event.apply_patch({"amount": 5.0, "scheduled_at": later, "id": "event-1"})
    assert patched.amount == 5.0
    assert patched.scheduled_at == later

    with pytest.raises(InvalidTransition):
        event.apply_patch({"id": "event-2"})
    with pytest.raises(InvalidTransition):
        event.apply_patch({"kind": UnlockKind.LINEAR})
    with pytest.raises(InvalidTransition):
        event.apply_patch({"tx_hash": "0xabc"})
    with pytest.raises(ValueError):
        event.apply_patch({"color": "blue"})


def test_apply_patch_never_moves_status_backwards_or_around_the_ledger() -> None:
    pending = _unlock()
    confirmed = pending.confirmed("0xabc")

    with pytest.raises(InvalidTransition):
        pending.apply_patch({"status": "confirmed"})
    with pytest.raises(InvalidTransition):
        confirmed.apply_patch({"status": "pending"})
    with pytest.raises(DuplicateConfirmation):
        confirmed.apply_patch({"status": "confirmed"})


def test_unlock_record_round_trip_keeps_confirmation() -> None:
    confirmed = _unlock().confirmed("0xabc")
    restored = UnlockEvent.from_record(confirmed.to_record())

    assert restored == confirmed


def test_anomaly_event_coerces_enums_and_copies_metadata() -> None:
    metadata = {"usdValue": 1.0}
    event = AnomalyEvent(
        id="whale-1",
        category="whale_transfer",  # type: ignore[arg-type]
        severity="critical",  # type: ignore[arg-type]
        title="t",
        description="d",
        created_at=NOW,
        metadata=metadata,
    )
    metadata["usdValue"] = 2.0

    assert event.category == AnomalyCategory.WHALE_TRANSFER
    assert event.severity == Severity.CRITICAL
    assert event.metadata == {"usdValue": 1.0}
    assert AnomalyEvent.from_record(event.to_record()) == event


def test_parse_timestamp_accepts_z_suffix_and_offsets() -> None:
    assert parse_timestamp("2025-01-01T12:00:00Z") == NOW
    shifted = datetime(2025, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert parse_timestamp(shifted) == NOW
