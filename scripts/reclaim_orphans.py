"""Cron entry point for reclaiming orphaned file attachments."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime

from src.cms.config import load_config
from src.cms.dependencies import build_store
from src.cms.jobs.orphan_reclaimer import OrphanReclaimer, ReclaimResult
from src.cms.logging import configure_logging


def perform_reclaim(*, dry_run: bool, reference_time: datetime | None = None) -> ReclaimResult:
    """Run the reclaimer once and return its counters."""
    config = load_config()
    reclaimer = OrphanReclaimer(
        store=build_store(config),
        retry=config.store_retry,
        lookup_error_policy=config.owner_lookup_error_policy,
    )
    return asyncio.run(reclaimer.run(now=reference_time, dry_run=dry_run))


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete file attachments whose owner is missing.")
    parser.add_argument("--dry-run", action="store_true", help="Only report counts without deleting.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    configure_logging()
    try:
        result = perform_reclaim(dry_run=args.dry_run)
    except Exception as exc:
        print(f"reclaim failed: {exc}", file=sys.stderr)
        return 2

    label = "reclaim dry-run" if result.dry_run else "reclaim done"
    print(f"{label}, deleted={result.deleted_count}, skipped={result.skipped_count}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
