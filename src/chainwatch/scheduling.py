"""Periodic job wrappers and the supervisor that owns the scheduler."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chainwatch.bus import EventBus
from chainwatch.domain.events import LifecycleEventType
from chainwatch.errors import StoreUnavailable
from chainwatch.logging.logger import HumanLogger


@dataclass(frozen=True)
class JobHealth:
    """Point-in-time view of one periodic job."""

    name: str
    passes: int
    skipped: int
    errors: int
    consecutive_store_failures: int
    healthy: bool
    last_error: str | None
    last_success_at: str | None


class PeriodicJob:
    """One recurring unit of work; ticks of the same job never overlap."""

    def __init__(
        self,
        name: str,
        tick: Callable[[], Any],
        interval_seconds: float,
        human_logger: HumanLogger | None = None,
        failure_threshold: int = 3,
        max_passes: int | None = None,
        bus: EventBus | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        if max_passes is not None and max_passes <= 0:
            raise ValueError("max_passes must be positive")
        self.name = name
        self.interval_seconds = float(interval_seconds)
        self.failure_threshold = failure_threshold
        self.max_passes = max_passes
        self.human_logger = human_logger or HumanLogger()
        self.bus = bus
        self._tick = tick
        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()
        self.done = threading.Event()
        self.passes = 0
        self.skipped = 0
        self.errors = 0
        self.consecutive_store_failures = 0
        self.last_error: str | None = None
        self.last_success_at: datetime | None = None
        self.last_result: Any = None

    def run(self) -> bool:
        """Run one tick unless stopped, finished, or another tick is in flight."""
        if self._stopped.is_set() or self.done.is_set():
            return False
        if not self._run_lock.acquire(blocking=False):
            with self._state_lock:
                self.skipped += 1
            self.human_logger.tick_skipped(self.name)
            return False
        try:
            self._run_tick()
            return True
        finally:
            self._run_lock.release()

    def stop(self) -> None:
        """Stop accepting ticks; an in-flight tick is allowed to finish."""
        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def healthy(self) -> bool:
        return self.consecutive_store_failures < self.failure_threshold

    def health(self) -> JobHealth:
        with self._state_lock:
            return JobHealth(
                name=self.name,
                passes=self.passes,
                skipped=self.skipped,
                errors=self.errors,
                consecutive_store_failures=self.consecutive_store_failures,
                healthy=self.healthy,
                last_error=self.last_error,
                last_success_at=(
                    self.last_success_at.isoformat() if self.last_success_at else None
                ),
            )

    def _run_tick(self) -> None:
        try:
            result = self._tick()
        except StoreUnavailable as exc:
            self._record_failure(exc, store_failure=True)
        except Exception as exc:
            self._record_failure(exc, store_failure=False)
        else:
            with self._state_lock:
                self.consecutive_store_failures = 0
                self.last_success_at = datetime.now(tz=UTC)
                self.last_result = result
        with self._state_lock:
            self.passes += 1
            if self.max_passes is not None and self.passes >= self.max_passes:
                self.done.set()

    def _record_failure(self, exc: Exception, store_failure: bool) -> None:
        message = f"{type(exc).__name__}: {exc}"
        with self._state_lock:
            self.errors += 1
            self.last_error = message
            if store_failure:
                self.consecutive_store_failures += 1
            failures = self.consecutive_store_failures
        self.human_logger.tick_failed(self.name, message)
        if self.bus is not None:
            self.bus.publish(
                LifecycleEventType.TICK_FAILED,
                {"job": self.name, "message": message, "store_failure": store_failure},
            )
        if store_failure and failures == self.failure_threshold:
            self.human_logger.unhealthy(self.name, failures)


class Supervisor:
    """Owns the background scheduler; nothing runs until :meth:`start`."""

    def __init__(
        self,
        jobs: Sequence[PeriodicJob],
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        names = [job.name for job in jobs]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate job names: {names}")
        self.jobs = list(jobs)
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def start(self) -> None:
        if self.scheduler.running:
            return
        first_run = datetime.now(tz=UTC)
        for job in self.jobs:
            self.scheduler.add_job(
                func=job.run,
                trigger=IntervalTrigger(seconds=job.interval_seconds),
                id=job.name,
                name=job.name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
                next_run_time=first_run,
            )
        self.scheduler.start()

    def stop(self, wait: bool = True) -> None:
        """Stop all jobs and release the scheduler, letting in-flight ticks finish."""
        for job in self.jobs:
            job.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

    def wait(self, stop_event: threading.Event | None = None, poll_seconds: float = 0.5) -> None:
        """Block until every job hit its pass limit or ``stop_event`` is set."""
        stopper = stop_event or threading.Event()
        while not stopper.is_set():
            if self.jobs and all(job.done.is_set() for job in self.jobs):
                return
            stopper.wait(poll_seconds)

    def is_healthy(self) -> bool:
        return all(job.healthy for job in self.jobs)

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_healthy(),
            "jobs": {job.name: job.health() for job in self.jobs},
        }
