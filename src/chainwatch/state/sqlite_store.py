"""SQLite event store for restart-safe unlock tracking."""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from chainwatch.domain.models import (
    AnomalyEvent,
    DedupRecord,
    UnlockEvent,
    UnlockStatus,
    parse_timestamp,
)
from chainwatch.errors import (
    DuplicateConfirmation,
    InvalidTransition,
    StoreUnavailable,
    UnknownEvent,
)
from chainwatch.state.memory_store import build_unlock_from_patch, next_unlock_id
from chainwatch.state.store import (
    DEFAULT_ANOMALY_CAPACITY,
    UnlockPredicate,
    match_all,
    unlock_sort_key,
)


class SqliteEventStore:
    """SQLite-backed implementation of the event store."""

    def __init__(self, db_path: str, anomaly_capacity: int = DEFAULT_ANOMALY_CAPACITY) -> None:
        if anomaly_capacity <= 0:
            raise ValueError("anomaly_capacity must be positive")
        self.anomaly_capacity = anomaly_capacity
        self._lock = threading.RLock()
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self.connection = sqlite3.connect(db_path, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailable(f"cannot open {db_path}: {exc}") from exc
        self.connection.row_factory = sqlite3.Row
        self._initialize_schema()

    def add_unlock(self, event: UnlockEvent) -> None:
        if not event.is_pending:
            raise InvalidTransition(f"unlock {event.id} must be ingested as pending")
        with self._transaction() as cursor:
            self._insert_unlock(cursor, event)

    def list_unlocks(self, predicate: UnlockPredicate | None = None) -> list[UnlockEvent]:
        check = predicate or match_all
        with self._transaction() as cursor:
            events = self._load_unlocks(cursor)
        return sorted((event for event in events if check(event)), key=unlock_sort_key)

    def find_unlock(self, predicate: UnlockPredicate) -> UnlockEvent | None:
        with self._transaction() as cursor:
            events = self._load_unlocks(cursor)
        for event in events:
            if predicate(event):
                return event
        return None

    def upsert_unlock(
        self,
        predicate: UnlockPredicate,
        patch: Mapping[str, Any],
        allow_insert: bool = False,
    ) -> UnlockEvent | None:
        with self._transaction() as cursor:
            events = self._load_unlocks(cursor)
            for current in events:
                if not predicate(current):
                    continue
                updated = current.apply_patch(patch)
                cursor.execute(
                    """
                    UPDATE unlocks
                    SET scheduled_at = ?, token = ?, amount = ?, usd_value = ?, status = ?
                    WHERE id = ?
                    """,
                    (
                        updated.scheduled_at.isoformat(),
                        updated.token,
                        updated.amount,
                        updated.usd_value,
                        updated.status.value,
                        updated.id,
                    ),
                )
                return updated
            if not allow_insert:
                return None
            created = build_unlock_from_patch(
                patch,
                next_unlock_id({event.id for event in events}),
            )
            self._insert_unlock(cursor, created)
            return created

    def append_dedup(self, record: DedupRecord) -> bool:
        with self._transaction() as cursor:
            return self._insert_dedup(cursor, record)

    def has_seen(self, tx_hash: str) -> bool:
        with self._transaction() as cursor:
            row = cursor.execute(
                "SELECT 1 FROM unlocks_seen WHERE tx_hash = ? LIMIT 1",
                (tx_hash,),
            ).fetchone()
        return row is not None

    def list_dedup(self) -> list[DedupRecord]:
        with self._transaction() as cursor:
            rows = cursor.execute(
                "SELECT tx_hash, seen_at FROM unlocks_seen ORDER BY rowid ASC"
            ).fetchall()
        return [
            DedupRecord(tx_hash=str(row["tx_hash"]), seen_at=parse_timestamp(row["seen_at"]))
            for row in rows
        ]

    def confirm_unlock(self, event_id: str, record: DedupRecord) -> UnlockEvent | None:
        with self._transaction() as cursor:
            rows = cursor.execute("SELECT * FROM unlocks WHERE id = ?", (event_id,)).fetchall()
            if not rows:
                raise UnknownEvent(f"unknown unlock id: {event_id}")
            if not self._insert_dedup(cursor, record):
                return None
            # Raises DuplicateConfirmation for confirmed rows; the ledger insert rolls back.
            confirmed = self._row_to_unlock(rows[0]).confirmed(record.tx_hash)
            cursor.execute(
                """
                UPDATE unlocks
                SET status = ?, tx_hash = ?
                WHERE id = ? AND status = ?
                """,
                (
                    UnlockStatus.CONFIRMED.value,
                    record.tx_hash,
                    event_id,
                    UnlockStatus.PENDING.value,
                ),
            )
            if cursor.rowcount != 1:
                # Another writer confirmed the row after it was read.
                raise DuplicateConfirmation(f"unlock {event_id} is already confirmed")
            return confirmed

    def insert_anomaly(self, event: AnomalyEvent) -> list[AnomalyEvent]:
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO anomalies(
                    id,
                    category,
                    severity,
                    title,
                    description,
                    created_at,
                    created_ts,
                    wallet_address,
                    amount,
                    token,
                    metadata
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.category.value,
                    event.severity.value,
                    event.title,
                    event.description,
                    event.created_at.isoformat(),
                    event.created_at.timestamp(),
                    event.wallet_address,
                    event.amount,
                    event.token,
                    json.dumps(dict(event.metadata), sort_keys=True, default=str),
                ),
            )
            overflow = cursor.execute(
                """
                SELECT *
                FROM anomalies
                ORDER BY created_ts DESC, seq DESC
                LIMIT -1 OFFSET ?
                """,
                (self.anomaly_capacity,),
            ).fetchall()
            cursor.executemany(
                "DELETE FROM anomalies WHERE seq = ?",
                [(row["seq"],) for row in overflow],
            )
        return [self._row_to_anomaly(row) for row in overflow]

    def list_anomalies(self, limit: int | None = None) -> list[AnomalyEvent]:
        effective = -1 if limit is None else max(0, limit)
        with self._transaction() as cursor:
            rows = cursor.execute(
                """
                SELECT *
                FROM anomalies
                ORDER BY created_ts DESC, seq DESC
                LIMIT ?
                """,
                (effective,),
            ).fetchall()
        return [self._row_to_anomaly(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            self.connection.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                with self.connection:
                    yield self.connection.cursor()
            except sqlite3.IntegrityError as exc:
                raise ValueError(str(exc)) from exc
            except sqlite3.Error as exc:
                raise StoreUnavailable(str(exc)) from exc

    def _initialize_schema(self) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS unlocks(
                    id TEXT PRIMARY KEY,
                    scheduled_at TEXT NOT NULL,
                    token TEXT NOT NULL,
                    amount REAL NOT NULL,
                    usd_value REAL NOT NULL,
                    kind TEXT NOT NULL,
                    status TEXT NOT NULL,
                    tx_hash TEXT UNIQUE
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS unlocks_seen(
                    tx_hash TEXT PRIMARY KEY,
                    seen_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS anomalies(
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    category TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    created_ts REAL NOT NULL,
                    wallet_address TEXT,
                    amount REAL,
                    token TEXT,
                    metadata TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_unlocks_status
                ON unlocks(status)
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_anomalies_created
                ON anomalies(created_ts, seq)
                """
            )

    @staticmethod
    def _insert_unlock(cursor: sqlite3.Cursor, event: UnlockEvent) -> None:
        exists = cursor.execute("SELECT 1 FROM unlocks WHERE id = ?", (event.id,)).fetchone()
        if exists is not None:
            raise ValueError(f"duplicate unlock id: {event.id}")
        cursor.execute(
            """
            INSERT INTO unlocks(id, scheduled_at, token, amount, usd_value, kind, status, tx_hash)
            VALUES(?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.scheduled_at.isoformat(),
                event.token,
                event.amount,
                event.usd_value,
                event.kind.value,
                event.status.value,
                event.tx_hash,
            ),
        )

    @staticmethod
    def _insert_dedup(cursor: sqlite3.Cursor, record: DedupRecord) -> bool:
        cursor.execute(
            "INSERT OR IGNORE INTO unlocks_seen(tx_hash, seen_at) VALUES(?, ?)",
            (record.tx_hash, record.seen_at.isoformat()),
        )
        return cursor.rowcount == 1

    def _load_unlocks(self, cursor: sqlite3.Cursor) -> list[UnlockEvent]:
        rows = cursor.execute("SELECT * FROM unlocks ORDER BY rowid ASC").fetchall()
        return [self._row_to_unlock(row) for row in rows]

    @staticmethod
    def _row_to_unlock(row: sqlite3.Row) -> UnlockEvent:
        return UnlockEvent.from_record(dict(row))

    @staticmethod
    def _row_to_anomaly(row: sqlite3.Row) -> AnomalyEvent:
        record = dict(row)
        record["metadata"] = json.loads(record["metadata"] or "{}")
        return AnomalyEvent.from_record(record)
