from __future__ import annotations

import threading

import pytest

from chainwatch.bus import EventBus
from chainwatch.domain.events import LifecycleEvent, LifecycleEventType
from chainwatch.errors import StoreUnavailable
from chainwatch.scheduling import PeriodicJob, Supervisor


class RecordingLogger:
    def __init__(self) -> None:
        self.lines: list[tuple[str, ...]] = []

    def tick_failed(self, job_name: str, message: str) -> None:
        self.lines.append(("tick_failed", job_name, message))

    def tick_skipped(self, job_name: str) -> None:
        self.lines.append(("tick_skipped", job_name))

    def unhealthy(self, job_name: str, consecutive_failures: int) -> None:
        self.lines.append(("unhealthy", job_name, str(consecutive_failures)))


def _job(tick, logger: RecordingLogger, **kwargs: object) -> PeriodicJob:
    return PeriodicJob("job", tick, 1.0, human_logger=logger, **kwargs)  # type: ignore[arg-type]


def _fast(name: str, tick, logger: RecordingLogger, max_passes: int) -> PeriodicJob:
    return PeriodicJob(
        name,
        tick,
        0.05,
        human_logger=logger,  # type: ignore[arg-type]
        max_passes=max_passes,
    )


def test_overlapping_tick_is_skipped() -> None:
    logger = RecordingLogger()
    entered = threading.Event()
    release = threading.Event()

    def slow_tick() -> None:
        entered.set()
        release.wait(timeout=5)

    job = _job(slow_tick, logger)
    worker = threading.Thread(target=job.run)
    worker.start()
    assert entered.wait(timeout=5)

    assert job.run() is False
    release.set()
    worker.join(timeout=5)

    assert job.passes == 1
    assert job.skipped == 1
    assert ("tick_skipped", "job") in logger.lines


def test_store_failures_mark_job_unhealthy_until_success() -> None:
    logger = RecordingLogger()
    bus = EventBus(run_id="run-1")
    published: list[LifecycleEvent] = []
    bus.subscribe(published.append)
    outcomes: list[Exception | None] = [
        StoreUnavailable("disk gone"),
        StoreUnavailable("disk gone"),
        StoreUnavailable("disk gone"),
        StoreUnavailable("disk gone"),
        None,
    ]

    def tick() -> None:
        outcome = outcomes.pop(0)
        if outcome is not None:
            raise outcome

    job = _job(tick, logger, failure_threshold=3, bus=bus)

    for _ in range(4):
        assert job.run() is True
    assert not job.healthy
    assert [line for line in logger.lines if line[0] == "unhealthy"] == [
        ("unhealthy", "job", "3")
    ]
    assert len(published) == 4
    assert published[0].event_type == LifecycleEventType.TICK_FAILED
    assert published[0].payload["store_failure"] is True

    job.run()
    assert job.healthy
    assert job.health().consecutive_store_failures == 0
    assert job.health().last_success_at is not None


def test_other_errors_are_logged_without_affecting_health() -> None:
    logger = RecordingLogger()

    def tick() -> None:
        raise RuntimeError("bad data")

    job = _job(tick, logger, failure_threshold=1)
    job.run()

    assert job.healthy
    assert job.errors == 1
    assert job.last_error == "RuntimeError: bad data"
    assert logger.lines == [("tick_failed", "job", "RuntimeError: bad data")]


def test_pass_limit_and_stop_end_the_job() -> None:
    logger = RecordingLogger()
    ticks: list[int] = []
    job = _job(lambda: ticks.append(1), logger, max_passes=2)

    assert job.run() and job.run()
    assert job.done.is_set()
    assert job.run() is False

    stopped = _job(lambda: ticks.append(1), logger)
    stopped.stop()
    assert stopped.run() is False
    assert len(ticks) == 2


def test_job_rejects_invalid_configuration() -> None:
    logger = RecordingLogger()
    with pytest.raises(ValueError):
        PeriodicJob("job", lambda: None, 0, human_logger=logger)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        _job(lambda: None, logger, max_passes=0)


def test_supervisor_runs_jobs_until_pass_limit() -> None:
    logger = RecordingLogger()
    first_ticks: list[int] = []
    second_ticks: list[int] = []
    jobs = [
        _fast("first", lambda: first_ticks.append(1), logger, 2),
        _fast("second", lambda: second_ticks.append(1), logger, 3),
    ]
    supervisor = Supervisor(jobs)
    timeout = threading.Event()
    timer = threading.Timer(10, timeout.set)
    timer.start()
    try:
        supervisor.start()
        supervisor.wait(timeout, poll_seconds=0.01)
    finally:
        supervisor.stop(wait=True)
        timer.cancel()

    assert len(first_ticks) == 2
    assert len(second_ticks) == 3
    assert not supervisor.scheduler.running
    assert supervisor.health()["healthy"] is True
    assert all(job.stopped for job in jobs)


def test_supervisor_rejects_duplicate_job_names() -> None:
    logger = RecordingLogger()
    jobs = [_job(lambda: None, logger), _job(lambda: None, logger)]

    with pytest.raises(ValueError):
        Supervisor(jobs)


def test_supervisor_stop_before_start_is_safe() -> None:
    logger = RecordingLogger()
    jobs = [_job(lambda: None, logger)]
    supervisor = Supervisor(jobs)

    supervisor.stop()

    assert not supervisor.scheduler.running
