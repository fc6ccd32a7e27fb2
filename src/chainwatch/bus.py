"""Subscribable lifecycle signal for notification collaborators."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from chainwatch.domain.events import LifecycleEvent, LifecycleEventType
from chainwatch.logging.logger import HumanLogger

Subscriber = Callable[[LifecycleEvent], None]


class EventBus:
    """Synchronous fan-out; a failing subscriber never affects the publisher."""

    def __init__(self, run_id: str = "local", human_logger: HumanLogger | None = None) -> None:
        self.run_id = run_id
        self.human_logger = human_logger or HumanLogger()
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(
        self,
        event_type: LifecycleEventType,
        payload: dict[str, Any] | None = None,
    ) -> LifecycleEvent:
        event = LifecycleEvent(
            run_id=self.run_id,
            event_type=event_type,
            payload=dict(payload or {}),
        )
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as exc:
                name = getattr(subscriber, "__qualname__", type(subscriber).__name__)
                self.human_logger.notify_failed(name, f"{type(exc).__name__}: {exc}")
        return event
