"""Command-line entry for familycal.

Subcommands:
    expand       print occurrences of the configured records in a date range
    notify-once  run a single notification cycle
    run          run the periodic notification scheduler until interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import sys
from typing import Optional

from . import _init_logging, run_scheduler
from .domain.models import Person


def _parse_date(value: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}; expected YYYY-MM-DD") from e


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the familycal CLI."""
    parser = argparse.ArgumentParser(
        prog="familycal",
        description="Family calendar recurrence and reminder engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  familycal --config familycal.yaml expand --start 2025-01-06 --end 2025-01-20
  familycal --config familycal.yaml expand --start 2025-01-06 --end 2025-01-20 --person child_a
  familycal notify-once
  familycal run
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="YAML/JSON config file")

    sub = parser.add_subparsers(dest="command", required=True)

    expand = sub.add_parser("expand", help="List occurrences in a date range")
    expand.add_argument("--start", type=_parse_date, required=True, help="First day (YYYY-MM-DD)")
    expand.add_argument("--end", type=_parse_date, required=True, help="Last day (YYYY-MM-DD)")
    expand.add_argument(
        "--person",
        choices=[p.value for p in Person],
        help="Only this person's (and family-wide) schedules",
    )

    sub.add_parser("notify-once", help="Run a single notification cycle")
    sub.add_parser("run", help="Run the notification scheduler until interrupted")
    return parser


async def _expand(config_path: Optional[str], args: argparse.Namespace) -> int:
    from .config_loader import load_config
    from .config_manager import ConfigManager
    from .domain.messages import person_label
    from .domain.models import ScheduleFilter
    from .domain.recurrence import expand_records
    from .runner import build_expander, build_storage

    config = load_config(config_path, overrides=ConfigManager().load_overrides())
    _init_logging(config.log_level)

    person = Person(args.person) if args.person else None
    storage = build_storage(config)
    records = await storage.list(ScheduleFilter(person=person))
    expander = build_expander(config)
    occurrences = expand_records(records, args.start, args.end, expander)

    for occ in occurrences:
        start = occ.start.astimezone(expander.timezone)
        name = person_label(occ.person, config.person_names)
        print(f"{start:%Y-%m-%d %H:%M}  {name:<10} {occ.title}  ({occ.occurrence_id})")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Run the familycal CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command == "expand":
        return asyncio.run(_expand(args.config, args))
    if args.command == "notify-once":
        sent = run_scheduler(args.config, once=True)
        print(f"Sent {sent} notification(s)")
        return 0
    run_scheduler(args.config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
