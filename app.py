"""
Team Availability Engine - command line entry point
Works against the local SQLite schedule store
"""
import argparse
import asyncio
import logging
import sqlite3
import sys
from datetime import date
from typing import List, Optional

from pydantic import ValidationError

from models.config import load_engine_config
from models.sprint import NavigationState, SprintDefinition
from models.validation import validate_reason_policy, validate_sprint_definition
from modules.schedule_aggregator import ScheduleAggregator, get_summary_dataframe
from modules.sprint_resolver import SprintBoundaryResolver
from modules.sqlite_db import DEFAULT_DB_PATH
from modules.sqlite_store import SqliteScheduleStore
from modules.sync_coordinator import SyncCoordinator
from utils.constants import CONFIG_PATH, MODE_SPRINT, MODE_WEEK, VALID_VALUES
from utils.date_utils import parse_date_flexible
from utils.errors import ConfigurationError, StoreError
from utils.formatters import (
    format_completion_status,
    format_date_range,
    format_day_label,
    format_hours,
    format_percentage,
)

logger = logging.getLogger(__name__)

CLEAR_VALUE = "clear"


def _parse_date(value: str) -> date:
    try:
        return parse_date_flexible(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Team availability and sprint window engine")
    parser.add_argument(
        "--db-path",
        default=DEFAULT_DB_PATH,
        help="Path to SQLite database file (default: data/availability.sqlite3)",
    )
    parser.add_argument(
        "--config",
        default=CONFIG_PATH,
        help="Path to engine TOML config (default: config/availability.toml)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the database schema")

    member = subparsers.add_parser("add-member", help="Add a team member")
    member.add_argument("name")
    member.add_argument("--team", type=int, required=True)
    member.add_argument("--manager", action="store_true")
    member.add_argument("--id", type=int, dest="member_id", default=None)

    sprint = subparsers.add_parser("set-sprint", help="Save a sprint definition")
    sprint.add_argument("number", type=int)
    sprint.add_argument("start", type=_parse_date)
    sprint.add_argument("end", type=_parse_date)
    sprint.add_argument("--name", default="")

    for name, help_text in (("window", "Show the active window"), ("summary", "Show team availability")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--mode", choices=[MODE_SPRINT, MODE_WEEK], default=MODE_SPRINT)
        sub.add_argument("--offset", type=int, default=0)
        sub.add_argument("--today", type=_parse_date, default=None)
        if name == "summary":
            sub.add_argument("--team", type=int, required=True)

    entry = subparsers.add_parser("set", help="Set one schedule entry")
    entry.add_argument("--team", type=int, required=True)
    entry.add_argument("--member", type=int, required=True)
    entry.add_argument("--date", type=_parse_date, required=True)
    entry.add_argument("--value", choices=VALID_VALUES + [CLEAR_VALUE], required=True)
    entry.add_argument("--reason", default=None)

    return parser.parse_args(argv)


def _resolve(args, store: SqliteScheduleStore, resolver: SprintBoundaryResolver):
    today = args.today or date.today()
    definition = store.load_sprint_definition(today)
    nav = NavigationState(mode=args.mode, offset=args.offset)
    return resolver.resolve(definition, nav, today), today


def cmd_window(args, store: SqliteScheduleStore, resolver: SprintBoundaryResolver) -> int:
    window, today = _resolve(args, store, resolver)
    progress = window.progress(today)

    print(f"{window.label}: {format_date_range(window.start_date, window.end_date)} ({window.source})")
    if window.is_fallback:
        print("Note: no current sprint definition, window is estimated")
    print(f"Working days ({len(window.working_days)}):")
    for week in resolver.calendar.group_by_week(window.working_days):
        print("  " + "  ".join(format_day_label(day) for day in week))
    print(
        f"Progress: {format_percentage(progress.progress_percentage)} "
        f"({progress.working_days_remaining} working days remaining)"
    )
    return 0


async def cmd_summary(args, store: SqliteScheduleStore, resolver: SprintBoundaryResolver, aggregator) -> int:
    window, _ = _resolve(args, store, resolver)
    members_df = store.list_team_members(args.team)
    member_names = {int(member_id): name for member_id, name in zip(members_df['Id'], members_df['Name'])}

    coordinator = SyncCoordinator(store)
    async with coordinator.session(args.team, window.start_date, window.end_date):
        team = aggregator.summarize_snapshot(coordinator.snapshot, window.working_days, member_names.keys())

    print(f"{window.label}: {format_date_range(window.start_date, window.end_date)}")
    print(
        f"Team {args.team}: {team.total_members} members, "
        f"{format_hours(team.actual_hours)} of {format_hours(team.max_capacity_hours)} "
        f"({format_percentage(team.utilization_percentage)} utilization, "
        f"{format_percentage(team.completion_percentage)} filled)"
    )
    for status, count in team.status_counts.items():
        print(f"  {format_completion_status(status)}: {count}")

    summary_df = get_summary_dataframe(team.member_summaries, member_names)
    if not summary_df.empty:
        print(summary_df.drop(columns=['MemberId']).to_string(index=False))
    return 0


async def cmd_set(args, store: SqliteScheduleStore) -> int:
    value = None if args.value == CLEAR_VALUE else args.value
    is_valid, errors = validate_reason_policy(value, args.reason)
    if not is_valid:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 2

    coordinator = SyncCoordinator(store)
    async with coordinator.session(args.team, args.date, args.date):
        coordinator.apply_local_write(args.member, args.date, value, args.reason)
        outcomes = await coordinator.flush_writes()

    failed = [outcome for outcome in outcomes if not outcome.ok]
    for outcome in failed:
        print(f"Write failed for member {outcome.member_id} on {outcome.date}: {outcome.error}", file=sys.stderr)
    if failed:
        return 1

    print(f"Set member {args.member} on {args.date} to {args.value}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_engine_config(args.config)
    except ConfigurationError as exc:
        logger.error(f"Refusing to start: {exc}")
        return 2

    store = SqliteScheduleStore(args.db_path)
    resolver = SprintBoundaryResolver(config)
    aggregator = ScheduleAggregator(config)

    try:
        if args.command == "init-db":
            print(f"Database ready at {store.db_path}")
            return 0

        if args.command == "add-member":
            member_id = store.add_team_member(args.name, args.team, args.manager, args.member_id)
            print(f"Added member {member_id}: {args.name} (team {args.team})")
            return 0

        if args.command == "set-sprint":
            try:
                definition = SprintDefinition(
                    sprint_number=args.number,
                    start_date=args.start,
                    end_date=args.end,
                    sprint_name=args.name,
                )
            except ValidationError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                return 2
            is_valid, errors, warnings = validate_sprint_definition(
                definition, resolver.calendar, config.sprint_length_weeks, config.working_days_per_week
            )
            for warning in warnings:
                print(f"Warning: {warning}")
            if not is_valid:
                for error in errors:
                    print(f"Error: {error}", file=sys.stderr)
                return 2
            store.save_sprint_definition(definition)
            print(f"Saved sprint {definition.sprint_number}: {format_date_range(definition.start_date, definition.end_date)}")
            return 0

        if args.command == "window":
            return cmd_window(args, store, resolver)

        if args.command == "summary":
            return asyncio.run(cmd_summary(args, store, resolver, aggregator))

        if args.command == "set":
            return asyncio.run(cmd_set(args, store))
    except (StoreError, sqlite3.Error) as exc:
        logger.error(str(exc))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
