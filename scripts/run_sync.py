#!/usr/bin/env python3
"""Run a full catalog sync from the command line.

Meant for cron: each invocation runs the whole sequence of one or both
feeds and exits non-zero if any run failed.

Usage:
    python scripts/run_sync.py --source structured
    python scripts/run_sync.py --source scraped --keep-cache
    python scripts/run_sync.py --source both --create-tables
"""

import argparse
import asyncio
import sys

from catalog_sync.domain.entities import SyncRun, SyncStatus
from catalog_sync.domain.exceptions import DomainError
from catalog_sync.infrastructure.config import settings
from catalog_sync.infrastructure.database import async_session_factory, create_tables
from catalog_sync.infrastructure.feeds import build_orchestrator, close_clients
from catalog_sync.repository.sql import SqlCatalogStore


async def run_source(source: str, keep_cache: bool) -> SyncRun | None:
    """Run the full sequence of one feed.

    Args:
        source: "structured" or "scraped".
        keep_cache: Reuse cached scraped responses instead of refetching.

    Returns:
        The finished run, or None if it failed before a run was returned.
    """
    async with async_session_factory() as session:
        orchestrator = build_orchestrator(SqlCatalogStore(session, async_session_factory))
        try:
            if source == "structured":
                return await orchestrator.fetch_all()
            if keep_cache:
                # fetch_all_scraped always clears the cache first
                for step in (
                    orchestrator.sync_scraped_categories,
                    orchestrator.sync_scraped_manufacturers,
                    orchestrator.sync_scraped_parameters,
                ):
                    await step()
                return await orchestrator.sync_scraped_products()
            return await orchestrator.fetch_all_scraped()
        except DomainError as e:
            print(f"  ✗ {source} sync failed: {e.message}")
            return None


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Synchronize the catalog from the supplier feeds",
    )
    parser.add_argument(
        "--source",
        choices=["structured", "scraped", "both"],
        default="both",
        help="Feed to synchronize (default: both)",
    )
    parser.add_argument(
        "--keep-cache",
        action="store_true",
        help="Reuse cached scraped feed responses",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create database tables before syncing (local runs without migrations)",
    )

    args = parser.parse_args()

    if not settings.sync_enabled:
        print("Synchronization is disabled (SYNC_ENABLED=false)")
        return 0

    print("=" * 60)
    print("Catalog Sync")
    print("=" * 60)

    if args.create_tables:
        print("Creating database tables...")
        await create_tables()

    sources = ["structured", "scraped"] if args.source == "both" else [args.source]
    failed = False
    try:
        for source in sources:
            print(f"Running {source} sync...")
            run = await run_source(source, args.keep_cache)
            if run is None or run.status != SyncStatus.SUCCESS:
                failed = True
                continue
            print(f"  ✓ {run.message}")
            print(f"  ✓ Duration: {run.duration_ms} ms")
    finally:
        await close_clients()

    print("=" * 60)
    print("Sync failed" if failed else "Sync complete!")
    print("=" * 60)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
