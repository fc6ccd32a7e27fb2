"""Command-line interface for the chainwatch runtime."""

from __future__ import annotations

import argparse
import sys

from chainwatch.config import Settings
from chainwatch.domain.models import AnomalyCategory, Severity
from chainwatch.query import DEFAULT_ANOMALY_LIMIT, DEFAULT_UPCOMING_DAYS
from chainwatch.runtime import (
    confirm,
    ingest,
    run,
    show_anomalies,
    show_next_unlock,
    show_overdue,
    show_unlocks,
)

_ACTION_FLAGS = ("ingest", "confirm", "anomalies", "unlocks", "next", "overdue")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(description="Token unlock and on-chain anomaly monitor")
    parser.add_argument("--store", choices=["memory", "sqlite"], help="Store backend")
    parser.add_argument("--state-db", type=str, help="SQLite state database path")
    parser.add_argument("--events-dir", type=str, help="Run outputs directory")
    parser.add_argument("--max-passes", type=int, help="Run a fixed number of ticks per job")
    parser.add_argument("--signal-seed", type=int, help="Seed for the synthetic signal source")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Load the fixture unlocks before running the selected action",
    )
    parser.add_argument("--ingest", action="store_true", help="Run the unlock fetch once")
    parser.add_argument("--confirm", metavar="EVENT_ID", help="Confirm one unlock by id")
    parser.add_argument("--tx-hash", type=str, help="Tx hash to use with --confirm")
    parser.add_argument("--anomalies", action="store_true", help="List recent anomalies")
    parser.add_argument("--limit", type=int, help="Anomalies to consider with --anomalies")
    parser.add_argument(
        "--severity",
        choices=[item.value for item in Severity],
        help="Severity filter for --anomalies",
    )
    parser.add_argument(
        "--category",
        choices=[item.value for item in AnomalyCategory],
        help="Category filter for --anomalies",
    )
    parser.add_argument("--unlocks", action="store_true", help="List upcoming unlocks")
    parser.add_argument("--days", type=int, help="Look-ahead window for --unlocks")
    parser.add_argument("--next", metavar="TOKEN", help="Show the next pending unlock for TOKEN")
    parser.add_argument("--overdue", action="store_true", help="List overdue pending unlocks")
    return parser


def selected_action(args: argparse.Namespace) -> str | None:
    """Return the single requested one-shot action, if any."""
    chosen = [name for name in _ACTION_FLAGS if getattr(args, name)]
    if len(chosen) > 1:
        flags = ", ".join(f"--{name}" for name in chosen)
        raise ValueError(f"Use only one action flag: {flags}")
    return chosen[0] if chosen else None


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply CLI values onto environment-derived settings."""
    action = selected_action(args)
    if args.max_passes is not None and action is not None:
        raise ValueError("--max-passes only applies to the supervised run")
    if args.tx_hash and action != "confirm":
        raise ValueError("--tx-hash requires --confirm")
    if (args.limit is not None or args.severity or args.category) and action != "anomalies":
        raise ValueError("--limit, --severity and --category require --anomalies")
    if args.days is not None and action != "unlocks":
        raise ValueError("--days requires --unlocks")
    if args.limit is not None and args.limit < 0:
        raise ValueError("--limit must not be negative")
    if args.days is not None and args.days < 0:
        raise ValueError("--days must not be negative")

    overrides: dict[str, object] = {}
    if args.store:
        overrides["store_backend"] = args.store
    if args.state_db:
        overrides["state_db_path"] = args.state_db
    if args.events_dir:
        overrides["events_dir"] = args.events_dir
    if args.max_passes is not None:
        overrides["max_passes"] = args.max_passes
    if args.signal_seed is not None:
        overrides["signal_seed"] = args.signal_seed
    if args.seed:
        overrides["seed_fixtures"] = True
    return settings.with_overrides(**overrides)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = apply_cli_overrides(Settings.from_env(), args)
        action = selected_action(args)
    except ValueError as exc:
        print(f"Configuration error: {exc}")
        return 2

    if action == "ingest":
        return ingest(settings)
    if action == "confirm":
        return confirm(settings, args.confirm, tx_hash=args.tx_hash)
    if action == "anomalies":
        limit = args.limit if args.limit is not None else DEFAULT_ANOMALY_LIMIT
        return show_anomalies(settings, limit, severity=args.severity, category=args.category)
    if action == "unlocks":
        days = args.days if args.days is not None else DEFAULT_UPCOMING_DAYS
        return show_unlocks(settings, days)
    if action == "next":
        return show_next_unlock(settings, args.next)
    if action == "overdue":
        return show_overdue(settings)
    return run(settings)


if __name__ == "__main__":
    sys.exit(main())
