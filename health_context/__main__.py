"""Command-line entry point for the health context pipeline."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from datetime import timedelta
from typing import Any, Optional, Sequence

from .core.config import Config
from .core.exceptions import ConfigError, ContextPipelineError
from .core.logger import get_logger, session_log_path, setup_logging
from .core.utils import utc_now
from .factory import create_context_service
from .sources import SqliteHealthRecords


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="health-context",
        description="Maintain per-user health context snapshots and their archived history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  health-context seed user-1 --cycle-duration 30 --consent --symptom Headaches
  health-context run user-1
  health-context search user-1 "headaches before period" -k 3
        """,
    )
    parser.add_argument("--env-file", help="Path to a .env file (defaults to ./.env)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Refresh the context snapshot for a user")
    run.add_argument("user_id")

    search = subparsers.add_parser("search", help="Rank archived memories against free text")
    search.add_argument("user_id")
    search.add_argument("text")
    search.add_argument("-k", type=int, default=5, help="Number of memories to return (default: 5)")

    show = subparsers.add_parser("show", help="Print the stored snapshot for a user")
    show.add_argument("user_id")

    seed = subparsers.add_parser("seed", help="Write demo records for a user")
    seed.add_argument("user_id")
    seed.add_argument("--cycle-duration", type=int, required=True)
    seed.add_argument("--consent", action="store_true", help="Grant AI consent for the user")
    seed.add_argument("--symptom", action="append", default=[], help="Symptom name (repeatable)")
    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _seed(config: Config, args: argparse.Namespace) -> None:
    records = SqliteHealthRecords(config.database_path)
    today = utc_now().date()
    records.set_consent(args.user_id, args.consent)
    records.add_cycle(
        args.user_id,
        {"startDate": today.isoformat(), "cycleDuration": args.cycle_duration},
    )
    records.save_tracker(
        args.user_id,
        {
            "cycleInfo": {
                "cycleDuration": args.cycle_duration,
                "lastPeriodStart": today.isoformat(),
                "nextPeriodPrediction": (today + timedelta(days=args.cycle_duration)).isoformat(),
            },
        },
    )
    if args.symptom:
        records.add_symptom_entry(args.user_id, {"symptoms": [{"name": name} for name in args.symptom]})
    _print_json({"seeded": args.user_id, "cycleDuration": args.cycle_duration, "symptoms": args.symptom})


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = Config.load(args.env_file)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    if args.debug:
        config = replace(config, log_level="DEBUG")
    setup_logging(config.log_level)
    logger = get_logger(__name__)
    logger.debug("Config: %s, log=%s", config.as_dict(), session_log_path() or "console-only")

    try:
        if args.command == "seed":
            _seed(config, args)
            return 0

        service = create_context_service(config)
        if args.command == "run":
            _print_json(service.run(args.user_id).to_document())
        elif args.command == "search":
            _print_json([match.to_document() for match in service.search_memories(args.user_id, args.text, args.k)])
        elif args.command == "show":
            snapshot = service.current_snapshot(args.user_id)
            _print_json(snapshot.to_document() if snapshot else None)
    except ContextPipelineError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
