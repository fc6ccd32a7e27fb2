from __future__ import annotations

import json
from pathlib import Path

import pytest

from chainwatch.config import Settings
from chainwatch.logging.event_sink import load_events
from chainwatch.runtime import (
    build_runtime,
    build_store,
    confirm,
    ingest,
    run,
    show_overdue,
    show_unlocks,
)
from chainwatch.state import InMemoryEventStore, SqliteEventStore


def _settings(tmp_path: Path, **overrides: object) -> Settings:
    base = Settings(
        events_dir=str(tmp_path / "runs"),
        state_db_path=str(tmp_path / "state.db"),
        unlock_interval_seconds=0.05,
        anomaly_interval_seconds=0.05,
        signal_seed=11,
        max_passes=1,
    )
    return base.with_overrides(**overrides)


def test_build_store_selects_backend(tmp_path: Path) -> None:
    memory = build_store(_settings(tmp_path))
    sqlite = build_store(_settings(tmp_path, store_backend="sqlite", anomaly_capacity=7))

    assert isinstance(memory, InMemoryEventStore)
    assert isinstance(sqlite, SqliteEventStore)
    assert sqlite.anomaly_capacity == 7
    memory.close()
    sqlite.close()


def test_build_runtime_wires_two_jobs_without_starting(tmp_path: Path) -> None:
    runtime = build_runtime(_settings(tmp_path), run_id="run-1")

    assert [job.name for job in runtime.supervisor.jobs] == [
        "unlock_matcher",
        "anomaly_generator",
    ]
    assert not runtime.supervisor.scheduler.running
    assert len(runtime.generator.detectors) == 5
    assert runtime.events_path == tmp_path / "runs" / "run-1" / "events.jsonl"
    runtime.store.close()


def test_run_confirms_seeded_unlock_and_writes_outputs(tmp_path: Path) -> None:
    settings = _settings(tmp_path, seed_fixtures=True)

    assert run(settings) == 0

    run_dirs = list((tmp_path / "runs").iterdir())
    assert len(run_dirs) == 1
    records = load_events(run_dirs[0] / "events.jsonl")
    event_types = [record["event_type"] for record in records]
    assert event_types[0] == "run_started"
    confirmed = [record for record in records if record["event_type"] == "unlock_confirmed"]
    assert [record["payload"]["id"] for record in confirmed] == ["event-6"]
    assert (run_dirs[0] / "report.html").exists()


def test_sqlite_actions_share_state_between_invocations(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    settings = _settings(tmp_path, store_backend="sqlite", max_passes=None)

    assert ingest(settings) == 0
    ingested = json.loads(capsys.readouterr().out)
    assert len(ingested) == len(settings.unlock_tokens)

    assert show_unlocks(settings, days=31) == 0
    listed = json.loads(capsys.readouterr().out)
    assert {item["id"] for item in listed} == {item["id"] for item in ingested}

    target = ingested[0]["id"]
    assert confirm(settings, target, tx_hash="0xmanual") == 0
    confirmed = json.loads(capsys.readouterr().out)
    assert confirmed["status"] == "confirmed"
    assert confirmed["tx_hash"] == "0xmanual"

    assert confirm(settings, target, tx_hash="0xagain") == 0
    assert capsys.readouterr().out == ""

    assert confirm(settings, "missing") == 1

    assert show_overdue(settings) == 0
    assert json.loads(capsys.readouterr().out) == []
