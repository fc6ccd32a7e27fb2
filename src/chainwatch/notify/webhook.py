"""Webhook fan-out for confirmed unlocks and new anomalies."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from time import sleep
from typing import Any

import requests

from chainwatch.domain.events import LifecycleEvent, LifecycleEventType
from chainwatch.logging.logger import HumanLogger

DEFAULT_NOTIFY_TYPES = frozenset(
    {
        LifecycleEventType.UNLOCK_CONFIRMED,
        LifecycleEventType.ANOMALY_DETECTED,
    }
)


class WebhookNotifier:
    """POSTs lifecycle events as JSON with retry on transport and 5xx errors.

    Calling the notifier only queues the event; delivery and retries run on a
    single background worker so a slow endpoint never holds up the publisher.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        event_types: Iterable[LifecycleEventType] = DEFAULT_NOTIFY_TYPES,
        session: requests.Session | None = None,
        sleeper: Callable[[float], None] = sleep,
        human_logger: HumanLogger | None = None,
    ) -> None:
        if not url.strip():
            raise ValueError("webhook url is required")
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self.url = url.strip()
        self.timeout = timeout
        self.max_retries = max_retries
        self.event_types = frozenset(event_types)
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.human_logger = human_logger or HumanLogger()
        self._sleep = sleeper
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webhook")
        self._closed = False

    def __call__(self, event: LifecycleEvent) -> Future[None] | None:
        if event.event_type not in self.event_types or self._closed:
            return None
        future = self._executor.submit(self.send, event.to_record())
        future.add_done_callback(self._report_failure)
        return future

    def send(self, body: dict[str, Any]) -> None:
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.post(self.url, json=body, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self.max_retries:
                    break
                self._sleep(float(attempt))
                continue

            if response.status_code >= 500 or response.status_code == 429:
                if attempt == self.max_retries:
                    detail = response.text.strip() or "Server error"
                    raise ValueError(f"Webhook error {response.status_code}: {detail}")
                self._sleep(float(attempt))
                continue

            if response.status_code >= 400:
                detail = response.text.strip() or "Request rejected"
                raise ValueError(f"Webhook error {response.status_code}: {detail}")
            return

        if last_error is not None:
            raise ValueError(f"Webhook request failed: {last_error}") from last_error
        raise ValueError("Webhook request failed")

    def close(self) -> None:
        """Deliver what is already queued, then release the worker and session."""
        self._closed = True
        self._executor.shutdown(wait=True)
        self.session.close()

    def _report_failure(self, future: Future[None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.human_logger.notify_failed("WebhookNotifier", f"{type(exc).__name__}: {exc}")
