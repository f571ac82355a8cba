#!/usr/bin/env python
"""One-off Harvest sync from the command line.

Dry-run by default (fetch + resolve + display only); pass --write to
upsert the entries into the configured database.

Usage:
    python -m scripts.run_harvest_sync --from 2024-01-01 --to 2024-01-31
    python -m scripts.run_harvest_sync --from 2024-01-01 --to 2024-01-31 --client-id 123 -v
    python -m scripts.run_harvest_sync --from 2024-01-01 --to 2024-01-31 --write
"""

import argparse
import asyncio
import sys
from datetime import date

from database import create_tables, get_engine
from integrations.exceptions import ConnectorError, TransactionFailure
from logging_config import setup_logging
from services.sync_service import HarvestSyncService, SyncRunResult


def print_section(title: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print("=" * 60)


def print_result(result: SyncRunResult) -> None:
    print_section("Summary")
    print(f"  Period: {result.from_date} to {result.to_date}")
    print(f"  Entries fetched: {result.entries_processed}")
    print(f"  Entries stored: {result.entries_stored}")
    print(f"  Fetch time: {result.fetch_time_ms / 1000:.2f}s ({result.entries_per_second} entries/s)")

    metrics = result.metrics
    if metrics is None:
        return
    print(f"  Harvest requests: {metrics.harvest_requests} ({metrics.retry_attempts} retries)")
    print(f"  Lookup queries: {metrics.db_query_count}")
    print(f"  Cache hit rate: {result.cache_hit_rate:.0%}")
    if metrics.lookup_failures:
        print(f"  Lookup failures: {', '.join(metrics.lookup_failures)}")
    for kind, cache in metrics.cache.items():
        print(f"    {kind:<9} {cache.size}/{cache.max_size} cached, {cache.hits} hits, {cache.misses} misses")


async def run(args: argparse.Namespace) -> SyncRunResult:
    engine = get_engine()
    service = HarvestSyncService(engine)
    try:
        if args.write:
            await create_tables(engine)
        return await service.run(
            args.from_date,
            args.to_date,
            args.client_id,
            args.project_id,
            dry_run=not args.write,
        )
    finally:
        await service.aclose()
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    """Entry point: parse args and run one sync."""
    parser = argparse.ArgumentParser(
        description="Fetch Harvest time entries for a date range and optionally store them.",
    )
    parser.add_argument("--from", dest="from_date", required=True, type=date.fromisoformat,
                        help="First day to sync (YYYY-MM-DD)")
    parser.add_argument("--to", dest="to_date", required=True, type=date.fromisoformat,
                        help="Last day to sync (YYYY-MM-DD)")
    parser.add_argument("--client-id", help="Restrict to one Harvest client id")
    parser.add_argument("--project-id", help="Restrict to one Harvest project id")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log at DEBUG level",
    )
    parser.add_argument(
        "--write",
        action="store_true",
        help="Actually write to the database",
    )

    args = parser.parse_args(argv)
    if args.from_date > args.to_date:
        parser.error("--from must be on or before --to")

    setup_logging("DEBUG" if args.verbose else None)

    print(f"Mode: {'write' if args.write else 'dry-run'}")
    print("-" * 60)
    try:
        result = asyncio.run(run(args))
    except (ConnectorError, TransactionFailure) as e:
        print(f"\nSync failed: {e}")
        sys.exit(1)

    print_result(result)
    if not args.write:
        print("  (Dry-run - no database changes. Use --write to persist.)")


if __name__ == "__main__":
    main()
