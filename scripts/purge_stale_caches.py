#!/usr/bin/env python3
"""
Delete cache generations that no longer belong to the current worker version.

Workers do this themselves on activation; this helper lets an operator clean a
shared Redis cache store from a workstation or CI job, e.g. after rolling back
a deployment, without starting the service.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict

from service_offline_cache.app.caching.redis_storage import RedisCacheStorage
from service_offline_cache.app.models import CacheVersion


async def purge(
    *,
    redis_url: str,
    namespace: str,
    prefix: str,
    version: int,
    dry_run: bool,
) -> Dict[str, Any]:
    """Delete every cache outside the version triple and return a summary."""
    storage = RedisCacheStorage(redis_url, namespace=namespace)
    current = CacheVersion(prefix, version)
    try:
        names = await storage.keys()
        stale = [name for name in names if not current.owns(name)]
        deleted = []
        if not dry_run:
            for name in stale:
                if await storage.delete(name):
                    deleted.append(name)
    finally:
        await storage.close()

    return {
        "version": current.tag,
        "kept": [name for name in names if current.owns(name)],
        "stale": stale,
        "deleted": deleted,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge stale offline cache generations from Redis.")
    parser.add_argument("--redis-url", default=os.getenv("OFFLINE_CACHE_REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--namespace", default=os.getenv("OFFLINE_CACHE_REDIS_NAMESPACE", "offline_cache"), help="Redis key namespace")
    parser.add_argument("--prefix", default=os.getenv("OFFLINE_CACHE_CACHE_PREFIX", "kontrollitud"), help="Cache name prefix")
    parser.add_argument("--version", type=int, default=int(os.getenv("OFFLINE_CACHE_CACHE_VERSION", 1)), help="Current cache version number")
    parser.add_argument("--dry-run", action="store_true", help="List stale caches without deleting them")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        summary = asyncio.run(
            purge(
                redis_url=args.redis_url,
                namespace=args.namespace,
                prefix=args.prefix,
                version=args.version,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-purge] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[cache-purge] DRY RUN - no caches deleted")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
