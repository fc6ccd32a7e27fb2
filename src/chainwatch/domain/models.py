"""Core unlock and anomaly domain models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Self

from chainwatch.errors import DuplicateConfirmation, InvalidTransition


class UnlockKind(StrEnum):
    """Supported unlock shapes."""

    CLIFF = "cliff"
    LINEAR = "linear"


class UnlockStatus(StrEnum):
    """Unlock lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


class AnomalyCategory(StrEnum):
    """Closed set of anomaly categories, one per detector."""

    WHALE_TRANSFER = "whale_transfer"
    VOLUME_SPIKE = "volume_spike"
    UNUSUAL_CONTRACT = "unusual_contract"
    FLASH_LOAN = "flash_loan"
    LIQUIDITY_DRAIN = "liquidity_drain"


class Severity(StrEnum):
    """Anomaly severity levels, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_IMMUTABLE_UNLOCK_FIELDS = {"id", "kind"}
_PATCHABLE_UNLOCK_FIELDS = {"scheduled_at", "token", "amount", "usd_value", "status"}


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone-aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


@dataclass(frozen=True)
class UnlockEvent:
    """Scheduled release of previously restricted token supply."""

    id: str
    scheduled_at: datetime
    token: str
    amount: float
    usd_value: float
    kind: UnlockKind
    status: UnlockStatus = UnlockStatus.PENDING
    tx_hash: str | None = None

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("unlock id must be non-empty")
        if self.amount < 0 or self.usd_value < 0:
            raise ValueError("amount and usd_value must be non-negative")
        object.__setattr__(self, "scheduled_at", ensure_utc(self.scheduled_at))
        object.__setattr__(self, "token", self.token.strip().upper())
        object.__setattr__(self, "kind", UnlockKind(self.kind))
        object.__setattr__(self, "status", UnlockStatus(self.status))
        if (self.status == UnlockStatus.CONFIRMED) != (self.tx_hash is not None):
            raise ValueError("tx_hash must be set exactly when status is confirmed")

    @property
    def is_pending(self) -> bool:
        return self.status == UnlockStatus.PENDING

    def apply_patch(self, patch: Mapping[str, Any]) -> Self:
        """Return a patched copy, rejecting changes outside the lifecycle rules."""
        changes = dict(patch)
        for name in _IMMUTABLE_UNLOCK_FIELDS:
            if name in changes and changes.pop(name) != getattr(self, name):
                raise InvalidTransition(f"unlock field '{name}' is immutable ({self.id})")
        if "tx_hash" in changes:
            raise InvalidTransition(f"tx_hash is only set by confirmation ({self.id})")
        unknown = set(changes) - _PATCHABLE_UNLOCK_FIELDS
        if unknown:
            raise ValueError(f"unknown unlock fields: {', '.join(sorted(unknown))}")
        if "status" in changes:
            target = UnlockStatus(changes["status"])
            if self.status == UnlockStatus.CONFIRMED and target == UnlockStatus.PENDING:
                raise InvalidTransition(f"unlock {self.id} cannot return to pending")
            if target == UnlockStatus.CONFIRMED:
                if self.status == UnlockStatus.CONFIRMED:
                    raise DuplicateConfirmation(f"unlock {self.id} is already confirmed")
                raise InvalidTransition(
                    f"unlock {self.id} can only be confirmed through the dedup ledger"
                )
            changes["status"] = target
        return replace(self, **changes)

    def confirmed(self, tx_hash: str) -> Self:
        """Return the confirmed copy of a pending event."""
        if self.status == UnlockStatus.CONFIRMED:
            raise DuplicateConfirmation(f"unlock {self.id} is already confirmed")
        if not tx_hash:
            raise ValueError("tx_hash must be non-empty")
        return replace(self, status=UnlockStatus.CONFIRMED, tx_hash=tx_hash)

    def to_record(self) -> dict[str, Any]:
        """Convert event to a serializable dict."""
        return {
            "id": self.id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "token": self.token,
            "amount": self.amount,
            "usd_value": self.usd_value,
            "kind": self.kind.value,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Self:
        return cls(
            id=str(record["id"]),
            scheduled_at=parse_timestamp(record["scheduled_at"]),
            token=str(record["token"]),
            amount=float(record.get("amount", 0)),
            usd_value=float(record.get("usd_value", 0)),
            kind=UnlockKind(str(record.get("kind", UnlockKind.LINEAR)).lower()),
            status=UnlockStatus(str(record.get("status", UnlockStatus.PENDING)).lower()),
            tx_hash=record.get("tx_hash") or None,
        )


@dataclass(frozen=True)
class AnomalyEvent:
    """Detector output; never changed after creation."""

    id: str
    category: AnomalyCategory
    severity: Severity
    title: str
    description: str
    created_at: datetime
    wallet_address: str | None = None
    amount: float | None = None
    token: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", AnomalyCategory(self.category))
        object.__setattr__(self, "severity", Severity(self.severity))
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))
        object.__setattr__(self, "metadata", dict(self.metadata))

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "wallet_address": self.wallet_address,
            "amount": self.amount,
            "token": self.token,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Self:
        amount = record.get("amount")
        return cls(
            id=str(record["id"]),
            category=AnomalyCategory(str(record["category"])),
            severity=Severity(str(record["severity"])),
            title=str(record.get("title", "")),
            description=str(record.get("description", "")),
            created_at=parse_timestamp(record["created_at"]),
            wallet_address=record.get("wallet_address"),
            amount=float(amount) if amount is not None else None,
            token=record.get("token"),
            metadata=dict(record.get("metadata") or {}),
        )


@dataclass(frozen=True)
class DedupRecord:
    """Processed confirmation token."""

    tx_hash: str
    seen_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def __post_init__(self) -> None:
        if not self.tx_hash:
            raise ValueError("tx_hash must be non-empty")
        object.__setattr__(self, "seen_at", ensure_utc(self.seen_at))
