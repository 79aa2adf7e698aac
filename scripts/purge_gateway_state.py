#!/usr/bin/env python3
"""
Remove all state the tool gateway persisted in its shared store.

Run when uninstalling the gateway: deletes the stored settings document,
every rate counter and every cached tool list. Abilities themselves belong
to the host and are left alone.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Dict

from service_tool_gateway.app.caching import CacheManager, create_store
from service_tool_gateway.app.domain import SettingsStore
from service_tool_gateway.app.ratelimit import FixedWindowRateLimiter


async def purge(*, redis_url: str, dry_run: bool) -> Dict[str, int]:
    """Delete gateway state and return how many keys of each kind were removed."""
    store = create_store(redis_url)
    try:
        if dry_run:
            return {"store_reachable": int(await store.ping())}

        await SettingsStore(store).purge()
        counters = await FixedWindowRateLimiter(store).purge()
        cached = await CacheManager(store).invalidate_tools()
        return {"rate_counters": counters, "cached_tool_lists": cached}
    finally:
        await store.close()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge tool gateway settings, rate counters and tool caches.")
    parser.add_argument("--redis-url", default=os.getenv("ABILITY_GATEWAY_REDIS_URL"), help="Redis connection URL")
    parser.add_argument("--dry-run", action="store_true", help="Only check the store is reachable")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if not args.redis_url:
        print("[gateway-purge] no Redis URL given; in-memory state disappears with the process", file=sys.stderr)
        return 2

    try:
        summary = asyncio.run(purge(redis_url=args.redis_url, dry_run=args.dry_run))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[gateway-purge] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[gateway-purge] DRY RUN - nothing deleted")

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
