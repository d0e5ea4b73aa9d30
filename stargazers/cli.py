"""Command-line entrypoints for stargazers sync utilities."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

import dotenv
import pandas as pd

from src.config import DataConfig
from src.data.cache import ResponseCache
from src.data.database import get_database
from src.data.errors import ConfigurationError, SyncInProgressError
from src.data.ingestion import FeedSyncManager
from src.data.persistence import ContentStore
from src.utils.sync_log import read_log_tail, setup_logging
from stargazers.ingestion.historical import HISTORICAL_SOURCE, HistoricalSync
from stargazers.ingestion.reporting import TqdmReporter

PROJECT_ROOT = Path(__file__).resolve().parent.parent

FEED_CHOICES = ["all", "cme", "flare", "geomag", "space-weather", "neo", "journal", "apod"]

logger = logging.getLogger(__name__)


def _parse_date(date_str: str) -> date:
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{date_str}', expected YYYY-MM-DD")


def _store() -> ContentStore:
    db = get_database()
    db.create_tables()
    return ContentStore(db)


def _format_stats(stats: Dict[str, Any]) -> str:
    line = (
        f"{stats.get('status', 'unknown')}: {stats.get('records_inserted', 0)} inserted, "
        f"{stats.get('records_updated', 0)} updated, {stats.get('records_skipped', 0)} skipped, "
        f"{stats.get('records_failed', 0)} failed"
    )
    if stats.get("error_message"):
        line += f" ({stats['error_message']})"
    return line


def sync_feeds(args: argparse.Namespace) -> int:
    """Handle sync command."""
    manager = FeedSyncManager(store=_store())

    if args.feed == "all":
        results = manager.sync_all()
        for feed, stats in results.items():
            print(f"{feed:<14} {_format_stats(stats)}")
        return 0

    routine = manager.routines()[args.feed.replace("-", "_")]
    stats = routine()
    print(f"{args.feed}: {_format_stats(stats)}")
    return 0 if stats["status"] != "failure" else 1


def show_status(args: argparse.Namespace) -> int:
    """Handle status command."""
    store = _store()
    rows = FeedSyncManager(store=store).status()

    historical = store.last_ingestion(HISTORICAL_SOURCE)
    rows.append(
        {
            "feed": HISTORICAL_SOURCE,
            "schedule": "manual",
            "records": "-",
            "last_run": historical["run_timestamp"].strftime("%Y-%m-%d %H:%M:%S") if historical else "never",
            "last_status": historical["status"] if historical else "-",
        }
    )

    print(pd.DataFrame(rows).to_string(index=False))
    print(f"\ntotal records: {store.count():,}")
    return 0


def clear_cache(args: argparse.Namespace) -> int:
    """Handle clear-cache command."""
    removed = ResponseCache().clear()
    print(f"Removed {removed} cached responses")
    return 0


def show_logs(args: argparse.Namespace) -> int:
    """Handle logs command."""
    lines = read_log_tail(lines=args.lines)
    if not lines:
        print("No log entries yet")
        return 0
    print("\n".join(lines))
    return 0


def _historical_sync() -> HistoricalSync:
    return HistoricalSync(store=_store(), reporter=TqdmReporter())


def sync_historical(args: argparse.Namespace) -> int:
    """Handle sync-historical command."""
    outcome = _historical_sync().sync_historical_apod(args.start, args.end, api_keys=args.api_key)
    print(
        f"Historical sync complete: {outcome.inserted} inserted, {outcome.skipped} skipped, "
        f"{outcome.failed} failed, {outcome.requests_made} api requests"
    )
    return 0


def sync_historical_imagery(args: argparse.Namespace) -> int:
    """Handle sync-historical-imagery command."""
    stats = _historical_sync().sync_historical_imagery()
    print(f"Imagery sync complete: {stats['downloaded']} downloaded, {stats['failed']} failed of {stats['total']}")
    return 0


def sync_both_historical(args: argparse.Namespace) -> int:
    """Handle sync-both-historical command."""
    result = _historical_sync().sync_both_historical(args.start, args.end, api_keys=args.api_key)
    outcome, imagery = result["data"], result["imagery"]
    print(
        f"Historical sync complete: {outcome.inserted} inserted, {outcome.skipped} skipped, "
        f"{outcome.failed} failed, {outcome.requests_made} api requests; "
        f"{imagery['downloaded']} images downloaded; {result['removed']} duplicates removed"
    )
    return 0


def _add_range_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "start",
        nargs="?",
        type=_parse_date,
        default=DataConfig.BACKFILL_START,
        help=f"Start date YYYY-MM-DD (defaults to {DataConfig.BACKFILL_START})",
    )
    parser.add_argument("end", nargs="?", type=_parse_date, help="End date YYYY-MM-DD (defaults to today)")
    parser.add_argument(
        "--api-key",
        action="append",
        help="NASA API key (repeatable; defaults to the configured key pool)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="stargazers sync utilities")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run the recurring sync for one feed or all feeds")
    sync.add_argument("feed", choices=FEED_CHOICES, help="Feed to sync")
    sync.set_defaults(func=sync_feeds)

    status = subparsers.add_parser("status", help="Show per-feed schedule, record counts and last runs")
    status.set_defaults(func=show_status)

    cache = subparsers.add_parser("clear-cache", help="Remove all cached api responses")
    cache.set_defaults(func=clear_cache)

    logs = subparsers.add_parser("logs", help="Show the tail of the sync log")
    logs.add_argument("--lines", type=int, default=50, help="Number of lines to show (default 50)")
    logs.set_defaults(func=show_logs)

    historical = subparsers.add_parser("sync-historical", help="Backfill the daily photo feed for a date range")
    _add_range_arguments(historical)
    historical.set_defaults(func=sync_historical)

    imagery = subparsers.add_parser(
        "sync-historical-imagery", help="Download images for stored daily photos without local media"
    )
    imagery.set_defaults(func=sync_historical_imagery)

    both = subparsers.add_parser(
        "sync-both-historical", help="Backfill daily photos, download their imagery, then clean up"
    )
    _add_range_arguments(both)
    both.set_defaults(func=sync_both_historical)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    dotenv.load_dotenv(PROJECT_ROOT / ".env", override=False)

    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        return args.func(args)
    except (ConfigurationError, SyncInProgressError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
