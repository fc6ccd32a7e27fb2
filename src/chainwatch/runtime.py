"""Runtime wiring: store selection, supervised jobs, and one-shot actions."""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from chainwatch.bus import EventBus
from chainwatch.config import Settings
from chainwatch.detectors.registry import create_detectors
from chainwatch.domain.events import LifecycleEventType
from chainwatch.errors import ChainwatchError
from chainwatch.generator import AnomalyGenerator
from chainwatch.ingest import UnlockIngestor, seed_unlocks
from chainwatch.logging.event_sink import JsonlEventSink, generate_plotly_report
from chainwatch.logging.logger import HumanLogger
from chainwatch.matcher import UnlockMatcher
from chainwatch.notify.webhook import WebhookNotifier
from chainwatch.query import EventQuery
from chainwatch.scheduling import PeriodicJob, Supervisor
from chainwatch.signals import SyntheticSignalSource
from chainwatch.state.memory_store import InMemoryEventStore
from chainwatch.state.sqlite_store import SqliteEventStore
from chainwatch.state.store import EventStore


@dataclass
class Runtime:
    """Everything one supervised run needs, built but not started."""

    settings: Settings
    run_id: str
    store: EventStore
    bus: EventBus
    human_logger: HumanLogger
    matcher: UnlockMatcher
    generator: AnomalyGenerator
    query: EventQuery
    supervisor: Supervisor
    events_path: Path
    report_path: Path


def build_store(settings: Settings) -> EventStore:
    """Select the store implementation from settings."""
    if settings.store_backend == "sqlite":
        return SqliteEventStore(settings.state_db_path, anomaly_capacity=settings.anomaly_capacity)
    return InMemoryEventStore(anomaly_capacity=settings.anomaly_capacity)


def build_runtime(
    settings: Settings,
    store: EventStore | None = None,
    run_id: str | None = None,
) -> Runtime:
    """Wire collaborators for a run; no job is scheduled until the supervisor starts."""
    resolved_run_id = run_id or uuid4().hex
    run_directory = Path(settings.events_dir) / resolved_run_id
    human_logger = HumanLogger(level=settings.log_level)
    bus = EventBus(run_id=resolved_run_id, human_logger=human_logger)
    event_store = store if store is not None else build_store(settings)

    matcher = UnlockMatcher(
        event_store,
        tolerance=settings.unlock_tolerance,
        bus=bus,
        human_logger=human_logger,
    )
    generator = AnomalyGenerator(
        event_store,
        create_detectors(settings),
        signal_source=SyntheticSignalSource(seed=settings.signal_seed),
        bus=bus,
        human_logger=human_logger,
    )
    jobs = [
        PeriodicJob(
            matcher.job_name,
            matcher.tick,
            settings.unlock_interval_seconds,
            human_logger=human_logger,
            failure_threshold=settings.store_failure_threshold,
            max_passes=settings.pass_limit(),
            bus=bus,
        ),
        PeriodicJob(
            generator.job_name,
            generator.tick,
            settings.anomaly_interval_seconds,
            human_logger=human_logger,
            failure_threshold=settings.store_failure_threshold,
            max_passes=settings.pass_limit(),
            bus=bus,
        ),
    ]
    return Runtime(
        settings=settings,
        run_id=resolved_run_id,
        store=event_store,
        bus=bus,
        human_logger=human_logger,
        matcher=matcher,
        generator=generator,
        query=EventQuery(event_store, tolerance=settings.unlock_tolerance),
        supervisor=Supervisor(jobs),
        events_path=run_directory / "events.jsonl",
        report_path=run_directory / "report.html",
    )


def run(settings: Settings, stop_event: threading.Event | None = None) -> int:
    """Run the supervised jobs continuously or for a fixed number of passes."""
    runtime = build_runtime(settings)
    runtime.bus.subscribe(JsonlEventSink(str(runtime.events_path)))
    notifier: WebhookNotifier | None = None
    if settings.webhook_url:
        notifier = WebhookNotifier(
            settings.webhook_url,
            timeout=settings.webhook_timeout_seconds,
            human_logger=runtime.human_logger,
        )
        runtime.bus.subscribe(notifier)

    supervisor = runtime.supervisor
    job_names = [job.name for job in supervisor.jobs]
    exit_code = 0
    try:
        if settings.seed_fixtures:
            seed_unlocks(runtime.store)
        runtime.human_logger.run_started(runtime.run_id, settings.store_backend, job_names)
        runtime.bus.publish(
            LifecycleEventType.RUN_STARTED,
            {
                "store_backend": settings.store_backend,
                "jobs": job_names,
                "max_passes": settings.max_passes,
            },
        )
        supervisor.start()
        supervisor.wait(stop_event)
    except KeyboardInterrupt:
        exit_code = 0
    except Exception as exc:
        runtime.human_logger.error(str(exc))
        exit_code = 1
    finally:
        try:
            supervisor.stop(wait=True)
            runtime.human_logger.run_stopped(
                runtime.run_id,
                {job.name: job.passes for job in supervisor.jobs},
            )
            generate_plotly_report(str(runtime.events_path), str(runtime.report_path))
        finally:
            if notifier is not None:
                notifier.close()
            runtime.store.close()

    if exit_code == 0 and not supervisor.is_healthy():
        exit_code = 1
    return exit_code


@contextmanager
def open_store(settings: Settings) -> Iterator[EventStore]:
    """Open the configured store for a one-shot action, seeding when asked."""
    store = build_store(settings)
    try:
        if settings.seed_fixtures:
            seed_unlocks(store)
        yield store
    finally:
        store.close()


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def ingest(settings: Settings) -> int:
    """Run the simulated unlock fetch once."""
    human_logger = HumanLogger(level=settings.log_level)
    with open_store(settings) as store:
        ingestor = UnlockIngestor(
            store,
            tokens=settings.unlock_tokens,
            seed=settings.signal_seed,
            human_logger=human_logger,
        )
        stored = ingestor.run_once()
        print_json([event.to_record() for event in stored])
    return 0


def confirm(settings: Settings, event_id: str, tx_hash: str | None = None) -> int:
    """Confirm one unlock by id; an already confirmed id is reported and exits 0."""
    human_logger = HumanLogger(level=settings.log_level)
    with open_store(settings) as store:
        matcher = UnlockMatcher(
            store,
            tolerance=settings.unlock_tolerance,
            human_logger=human_logger,
        )
        try:
            confirmed = matcher.confirm(event_id, tx_hash=tx_hash)
        except (ChainwatchError, ValueError) as exc:
            human_logger.error(str(exc))
            return 1
        if confirmed is not None:
            print_json(confirmed.to_record())
    return 0


def show_anomalies(
    settings: Settings,
    limit: int,
    severity: str | None = None,
    category: str | None = None,
) -> int:
    with open_store(settings) as store:
        query = EventQuery(store, tolerance=settings.unlock_tolerance)
        events = query.list_anomalies(limit=limit, severity=severity, category=category)
        print_json([query.anomaly_payload(event) for event in events])
    return 0


def show_unlocks(settings: Settings, days: int) -> int:
    with open_store(settings) as store:
        query = EventQuery(store, tolerance=settings.unlock_tolerance)
        print_json([query.unlock_payload(event) for event in query.upcoming_unlocks(days=days)])
    return 0


def show_next_unlock(settings: Settings, token: str) -> int:
    with open_store(settings) as store:
        query = EventQuery(store, tolerance=settings.unlock_tolerance)
        event = query.next_unlock(token)
        print_json(query.unlock_payload(event) if event is not None else None)
    return 0


def show_overdue(settings: Settings) -> int:
    with open_store(settings) as store:
        query = EventQuery(store, tolerance=settings.unlock_tolerance)
        print_json([query.unlock_payload(event) for event in query.overdue_unlocks()])
    return 0
