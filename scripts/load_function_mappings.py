#!/usr/bin/env python3
"""
Validate a function-mapping file and store it in the ``configs`` table.

The bridge reads the list from ``API_FUNCTION_MAPPINGS`` at startup and on
``POST /api/config/refresh``; pass ``--refresh-url`` to trigger the reload
right after storing.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

import httpx  # noqa: E402

from service_bridge.app.config_store.loader import FUNCTION_MAPPINGS_KEY, parse_function_mappings  # noqa: E402
from service_bridge.app.config_store.postgres import ConfigStore  # noqa: E402


def load_entries(path: Path) -> List[Dict[str, Any]]:
    """Parse and validate the mapping file; raise ValueError on any bad entry."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("mapping file must contain a JSON list")

    entries = parse_function_mappings(data)
    if len(entries) != len(data):
        raise ValueError(f"{len(data) - len(entries)} malformed mapping(s) in {path}")

    return [entry.model_dump(by_alias=True, exclude_none=True) for entry in entries]


async def store_entries(
    entries: List[Dict[str, Any]],
    *,
    database_url: str,
    ssl: bool,
    refresh_url: Optional[str],
) -> None:
    store = ConfigStore(database_url, ssl=ssl)
    await store.start()
    try:
        await store.set_config(
            FUNCTION_MAPPINGS_KEY,
            json.dumps(entries, ensure_ascii=False),
            "Function-to-endpoint mappings for the API gateway",
        )
    finally:
        await store.stop()

    if refresh_url:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(refresh_url)
            response.raise_for_status()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Load gateway function mappings into the config table.")
    parser.add_argument("mapping_file", type=Path, help="JSON list of {functionName, path, method?, cacheable?}")
    parser.add_argument("--database-url", default=os.getenv("DATABASE_URL", ""), help="PostgreSQL connection URL")
    parser.add_argument("--no-ssl", action="store_true", help="Connect without TLS")
    parser.add_argument("--refresh-url", default=None, help="Bridge refresh endpoint to call afterwards")
    parser.add_argument("--dry-run", action="store_true", help="Validate and print the mappings without storing them")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        entries = load_entries(args.mapping_file)
    except (OSError, ValueError) as exc:
        print(f"[mappings] invalid mapping file: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(entries, indent=2, ensure_ascii=False))

    if args.dry_run:
        print(f"[mappings] DRY RUN - {len(entries)} mapping(s) validated, nothing stored")
        return 0

    if not args.database_url:
        print("[mappings] DATABASE_URL is not set", file=sys.stderr)
        return 1

    try:
        asyncio.run(
            store_entries(
                entries,
                database_url=args.database_url,
                ssl=not args.no_ssl,
                refresh_url=args.refresh_url,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[mappings] failed: {exc}", file=sys.stderr)
        return 1

    print(f"[mappings] stored {len(entries)} mapping(s) under {FUNCTION_MAPPINGS_KEY}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
