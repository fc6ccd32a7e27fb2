"""JSONL event sink and per-run Plotly report generator."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import pandas as pd
import plotly.express as px

from chainwatch.domain.events import LifecycleEvent

_FRAME_COLUMNS = ("ts", "event_type", "token", "severity", "category", "amount")


class JsonlEventSink:
    """Append-only JSONL writer; usable directly as an event bus subscriber."""

    def __init__(self, path: str) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.path = output_path
        self._lock = threading.Lock()

    def emit(self, event: LifecycleEvent) -> None:
        record = event.to_record()
        line = json.dumps(record, sort_keys=True, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def __call__(self, event: LifecycleEvent) -> None:
        self.emit(event)


def load_events(path: str | Path) -> list[dict[str, Any]]:
    """Load JSONL records from disk."""
    records: list[dict[str, Any]] = []
    input_path = Path(path)
    if not input_path.exists():
        return records
    with input_path.open("r", encoding="utf-8") as handle:
        for line in handle:
            text = line.strip()
            if not text:
                continue
            records.append(json.loads(text))
    return records


def events_frame(events: list[dict[str, Any]]) -> pd.DataFrame:
    """Flatten lifecycle records into one row per event."""
    rows: list[dict[str, Any]] = []
    for event in events:
        payload = event.get("payload", {})
        rows.append(
            {
                "ts": event.get("ts"),
                "event_type": event.get("event_type"),
                "token": payload.get("token") or "",
                "severity": payload.get("severity") or "n/a",
                "category": payload.get("category") or "",
                "amount": payload.get("amount"),
            }
        )
    frame = pd.DataFrame(rows, columns=list(_FRAME_COLUMNS))
    frame["ts"] = pd.to_datetime(frame["ts"], utc=True, errors="coerce")
    return frame


def generate_plotly_report(events_jsonl_path: str, output_html_path: str) -> None:
    """Render an interactive timeline of confirmations and anomalies."""
    events = load_events(events_jsonl_path)
    output = Path(output_html_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    if not events:
        empty_df = pd.DataFrame(
            {
                "event_type": ["none"],
                "count": [0],
            }
        )
        figure = px.bar(empty_df, x="event_type", y="count", title="Run Event Summary")
        figure.write_html(str(output), include_plotlyjs="cdn")
        return

    frame = events_frame(events)
    timeline = px.scatter(
        frame,
        x="ts",
        y="event_type",
        color="severity",
        title="Lifecycle Events Timeline",
        hover_data=["token", "category", "amount"],
    )
    anomalies = frame[frame["event_type"] == "anomaly_detected"]
    if anomalies.empty:
        severity_counts = pd.DataFrame({"severity": ["none"], "category": [""], "count": [0]})
    else:
        severity_counts = (
            anomalies.groupby(["severity", "category"], dropna=False)
            .size()
            .reset_index(name="count")
        )
    bars = px.bar(
        severity_counts,
        x="severity",
        y="count",
        color="category",
        title="Anomalies by Severity",
    )
    html_parts = [
        "<html><head><meta charset='utf-8'><title>chainwatch run report</title></head><body>",
        timeline.to_html(full_html=False, include_plotlyjs="cdn"),
        bars.to_html(full_html=False, include_plotlyjs=False),
        "</body></html>",
    ]
    output.write_text("".join(html_parts), encoding="utf-8")
