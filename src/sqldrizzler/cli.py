#!/usr/bin/env python3
# cli.py — Command-line entry point for SQL Drizzler

import argparse
import asyncio
import logging
import sys

from sqldrizzler.core import QueryDrizzler
from sqldrizzler.database import DatabaseConfig, DatabaseUnavailableError
from sqldrizzler.logging_config import setup_logging
from sqldrizzler.rendering import render_report, render_timeline
from sqldrizzler.utils import GracefulKiller, parse_duration

logger = logging.getLogger(__name__)


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid integer {value!r}") from e
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqldrizzler",
        description="🌧️ SQL Drizzler: repeat one query from many concurrent clients and report latency",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Connection
    parser.add_argument("-host", "--host", default="localhost:3306", help="Database host")
    parser.add_argument("-user", "--user", default="root", help="Database username")
    parser.add_argument("-password", "--password", default="", help="Database password")
    parser.add_argument(
        "-database", "--database", default="your_database_name", help="Database name"
    )

    # Workload
    parser.add_argument("-query", "--query", default="", help="Custom database query")
    parser.add_argument(
        "-interval",
        "--interval",
        type=_duration,
        default="10m",
        help="Pause after each worker's iterations (e.g. 10m, 30s, 500ms)",
    )
    parser.add_argument(
        "-concurrency",
        "--concurrency",
        type=_positive_int,
        default=10,
        help="Number of concurrent users",
    )
    parser.add_argument(
        "-iteration",
        "--iteration",
        type=_positive_int,
        default=5,
        help="Number of iterations per user",
    )

    # Output, Logging & Debugging
    parser.add_argument(
        "--timeline",
        action="store_true",
        help="Print a per-worker query timeline after the report",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional file to write logs to (e.g., sqldrizzler.log)",
    )
    return parser


def parse_args(argv=None):
    return build_parser().parse_args(argv)


async def run(argv=None) -> int:
    args = parse_args(argv)

    if not args.query.strip():
        print("Please provide a custom query using the -query flag.")
        return 1

    log_level = "DEBUG" if args.debug else "INFO"
    setup_logging(level=log_level, log_file=args.log_file)

    try:
        database = DatabaseConfig.from_host(
            args.host,
            user=args.user,
            password=args.password,
            database=args.database,
        )
    except ValueError as e:
        logger.error(str(e))
        return 1

    drizzler = QueryDrizzler(
        query=args.query,
        interval_s=args.interval,
        concurrency=args.concurrency,
        iterations=args.iteration,
        database=database,
        use_progress_bar=not args.no_progress,
    )
    GracefulKiller(on_kill=drizzler.stop)

    logging.info(
        f"Starting SQL Drizzler against {database.describe()} | "
        f"Concurrency: {args.concurrency} | Iterations: {args.iteration} | "
        f"Interval: {args.interval}s"
    )

    try:
        stats = await drizzler.run()
    except DatabaseUnavailableError as e:
        logger.error(f"Database unavailable: {e}")
        return 1

    print(render_report(stats, drizzler.started_at, drizzler.finished_at))
    if args.timeline:
        print()
        print(render_timeline(drizzler.timeline))
    return 0


def main(argv=None):
    sys.exit(asyncio.run(run(argv)))


if __name__ == "__main__":
    main()
