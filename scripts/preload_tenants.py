#!/usr/bin/env python3
"""
Warm the shared tenant-config cache for a list of tenant slugs.

Runs the same lookup the tenant router performs on a cache miss, so after a
successful run the ``tenant:{slug}`` entries are present in the key/value
store for every router process that shares it.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from shared.kv_store import create_kv_store
from service_tenant_router.app.adapters.registry_client import TenantRegistryClient
from service_tenant_router.app.tenants.config_store import ConfigStore


async def preload(
    *,
    redis_url: str,
    registry_url: str,
    registry_key: str,
    slugs: List[str],
    ttl_seconds: int,
    registry_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, str]:
    """Load every slug through a ConfigStore and return the summary."""
    kv_store = create_kv_store(redis_url)
    registry = TenantRegistryClient(
        registry_url,
        registry_key,
        client=httpx.AsyncClient(transport=registry_transport, timeout=10.0) if registry_transport else None,
    )
    store = ConfigStore(registry, kv_store=kv_store, ttl_seconds=ttl_seconds)

    await kv_store.start()
    try:
        return await store.preload(slugs)
    finally:
        await registry.close()
        await kv_store.close()


def _read_slugs(args: argparse.Namespace) -> List[str]:
    slugs = list(args.slugs)
    if args.slugs_file:
        slugs.extend(
            line.strip() for line in args.slugs_file.read_text().splitlines()
            if line.strip() and not line.startswith("#")
        )
    return slugs


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the tenant-config cache for tenant slugs.")
    parser.add_argument("slugs", nargs="*", help="Tenant slugs to preload")
    parser.add_argument("--slugs-file", type=Path, default=None, help="File with one slug per line")
    parser.add_argument("--redis-url", default=os.getenv("GATEWAY_REDIS_URL", "redis://localhost:6379/0"), help="Key/value store URL")
    parser.add_argument("--registry-url", default=os.getenv("GATEWAY_REGISTRY_URL", "http://localhost:54321"), help="Tenant registry URL")
    parser.add_argument("--registry-key", default=os.getenv("GATEWAY_REGISTRY_KEY", ""), help="Tenant registry API key")
    parser.add_argument("--ttl", type=int, default=int(os.getenv("GATEWAY_CONFIG_CACHE_TTL_SECONDS", 300)), help="Cache TTL in seconds")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    slugs = _read_slugs(args)
    if not slugs:
        print("[preload] no tenant slugs given", file=sys.stderr)
        return 2

    try:
        summary = asyncio.run(
            preload(
                redis_url=args.redis_url,
                registry_url=args.registry_url,
                registry_key=args.registry_key,
                slugs=slugs,
                ttl_seconds=args.ttl,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[preload] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0 if all(outcome == "ok" for outcome in summary.values()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
