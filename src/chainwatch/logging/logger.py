"""Concise human-readable lifecycle logger."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from chainwatch.domain.models import AnomalyEvent, Severity, UnlockEvent


class HumanLogger:
    """Console logger with fixed line types."""

    def __init__(self, level: str = "INFO") -> None:
        self._logger = logging.getLogger("chainwatch")
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self._logger.propagate = False
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s | %(message)s", "%Y-%m-%d %H:%M:%S")
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def run_started(self, run_id: str, store_backend: str, jobs: list[str]) -> None:
        self._logger.info(
            "start | run %s | store %s | jobs %s",
            self._short_id(run_id),
            store_backend,
            ",".join(jobs) or "none",
        )

    def run_stopped(self, run_id: str, passes: Mapping[str, int]) -> None:
        summary = ", ".join(f"{name} {count}" for name, count in sorted(passes.items()))
        self._logger.info("stop | run %s | passes %s", self._short_id(run_id), summary or "0")

    def unlock_ingested(self, event: UnlockEvent, created: bool) -> None:
        self._logger.info(
            "ingest | %s | %s | %s %s | %s ($%s)",
            "added" if created else "updated",
            event.id,
            event.token,
            event.kind.value,
            self._short_ts(event.scheduled_at),
            f"{event.usd_value:,.0f}",
        )

    def unlock_confirmed(self, event: UnlockEvent) -> None:
        self._logger.info(
            "confirm | %s | %s | amount %s | tx %s",
            event.id,
            event.token,
            self._format_amount(event.amount),
            self._short_id(event.tx_hash),
        )

    def duplicate(self, event_id: str, tx_hash: str | None, reason: str) -> None:
        self._logger.warning(
            "duplicate | %s | tx %s | %s",
            event_id,
            self._short_id(tx_hash) or "-",
            reason,
        )

    def stale(self, event: UnlockEvent, now: datetime) -> None:
        overdue = now - event.scheduled_at
        self._logger.warning(
            "stale | %s | %s | scheduled %s | overdue %sm",
            event.id,
            event.token,
            self._short_ts(event.scheduled_at),
            int(overdue.total_seconds() // 60),
        )

    def anomaly(self, event: AnomalyEvent) -> None:
        parts = [f"anomaly | {event.severity.value} | {event.category.value} | {event.title}"]
        if event.token:
            parts.append(event.token)
        if event.amount is not None:
            parts.append(f"amount {self._format_amount(event.amount)}")
        level = logging.WARNING if event.severity == Severity.CRITICAL else logging.INFO
        self._logger.log(level, " | ".join(parts))

    def detector_failed(self, detector_id: str, message: str) -> None:
        self._logger.error("detector_failed | %s | %s", detector_id, message)

    def tick_failed(self, job_name: str, message: str) -> None:
        self._logger.error("tick_failed | %s | %s", job_name, message)

    def tick_skipped(self, job_name: str) -> None:
        self._logger.debug("tick_skipped | %s | previous tick still running", job_name)

    def unhealthy(self, job_name: str, consecutive_failures: int) -> None:
        self._logger.error(
            "unhealthy | %s | %s consecutive store failures",
            job_name,
            consecutive_failures,
        )

    def notify_failed(self, subscriber: str, message: str) -> None:
        self._logger.warning("notify_failed | %s | %s", subscriber, message)

    def error(self, message: str) -> None:
        self._logger.error("error | %s", message)

    @staticmethod
    def _short_id(value: str | None, head: int = 10, tail: int = 6) -> str:
        if not value:
            return ""
        text = str(value)
        if len(text) <= head + tail + 1:
            return text
        return f"{text[:head]}...{text[-tail:]}"

    @staticmethod
    def _format_amount(value: Any) -> str:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return str(value)
        if number.is_integer():
            return f"{number:,.0f}"
        return f"{number:,.4f}".rstrip("0").rstrip(".")

    @staticmethod
    def _short_ts(value: datetime) -> str:
        return value.strftime("%Y-%m-%d %H:%M")
