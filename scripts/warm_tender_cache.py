#!/usr/bin/env python3
"""
Warm Redis with the default tender listing page, the authority directory and
the statistics payload.

This mirrors the warming the service does after a statistics miss, but can be
run manually after a deploy or a cache flush.
"""

import argparse
import asyncio
import json
from pathlib import Path
import sys

from shared.config import get_config
from shared.logging import configure_logging
from service_tenders.app.caching import (
    CACHE_TTL_SECONDS,
    CacheWarmer,
    WarmTask,
    create_cache_store,
    stats_key,
)
from service_tenders.app.monitoring import RequestMonitor
from service_tenders.app.persistence import TenderRepository
from service_tenders.app.tenders import TenderQueryService


async def warm(*, overrides: dict, dry_run: bool) -> dict:
    """Execute cache warming and return the summary."""
    config = get_config("tenders", 8080, **overrides)
    configure_logging("tenders", config.log_level)

    repository = TenderRepository(
        config.postgres_dsn,
        min_size=1,
        max_size=2,
        command_timeout=config.postgres_command_timeout,
    )
    store = create_cache_store(config)
    warmer = CacheWarmer(store, enabled=True)
    service = TenderQueryService(repository, store, warmer, RequestMonitor(enabled=False), config)

    tasks = service.default_warm_tasks() + [
        WarmTask(key=stats_key(), ttl_seconds=CACHE_TTL_SECONDS["stats"], fetcher=service.load_stats),
    ]
    summary = {"planned": [task.key for task in tasks], "warmed": [], "failed": []}

    if dry_run:
        return summary
    if not store.available:
        summary["failed"] = summary["planned"]
        summary["reason"] = "cache disabled or TENDERS_REDIS_URL not set"
        return summary

    try:
        await repository.start()
        for task in tasks:
            if await warmer.warm_once(task):
                summary["warmed"].append(task.key)
            else:
                summary["failed"].append(task.key)
    finally:
        await store.close()
        await repository.stop()

    return summary


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm Redis caches for the tender service.")
    parser.add_argument("--redis-url", default=None, help="Redis connection URL (default: TENDERS_REDIS_URL)")
    parser.add_argument("--postgres-dsn", default=None, help="PostgreSQL DSN (default: TENDERS_POSTGRES_DSN)")
    parser.add_argument("--dry-run", action="store_true", help="Print the keys that would be warmed")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    overrides = {}
    if args.redis_url:
        overrides["redis_url"] = args.redis_url
    if args.postgres_dsn:
        overrides["postgres_dsn"] = args.postgres_dsn

    try:
        summary = asyncio.run(warm(overrides=overrides, dry_run=args.dry_run))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[cache-warm] DRY RUN - no Redis writes executed")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0 if not summary["failed"] else 2


if __name__ == "__main__":
    raise SystemExit(main())
