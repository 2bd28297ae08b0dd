#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from wtw.core.config import settings
from wtw.core.logging_config import LOG_FORMAT
from wtw.db.session import AsyncSessionLocal
from wtw.services.catalog import CacheRefreshResult, MediaCatalog, default_catalog, refresh_media_cache

logger = logging.getLogger("refresh_media_cache")


def _parse_library_keys(raw: str | None, default: list[str]) -> list[str]:
    if raw is None:
        return sorted(default)
    keys: list[str] = []
    for part in raw.split(","):
        key = part.strip()
        if key and key not in keys:
            keys.append(key)
    return sorted(keys)


def _summary_lines(result: CacheRefreshResult, *, apply: bool) -> list[str]:
    lines = [
        "Media cache refresh complete",
        f"mode: {'apply' if apply else 'dry-run'}",
        f"refresh_id: {result.refresh_id}",
        f"library_keys: {result.library_keys}",
    ]
    for media_type in ("movies", "shows", "both"):
        lines.append(f"{media_type}: {result.counts.get(media_type, 0)}")
    return lines


async def run_refresh(
    db: AsyncSession,
    catalog: MediaCatalog,
    *,
    library_keys: list[str],
    apply: bool,
) -> CacheRefreshResult:
    result = await refresh_media_cache(db, catalog, library_keys)
    if apply:
        await db.commit()
    else:
        await db.rollback()
        logger.info("Dry run, discarded refresh %s", result.refresh_id)
    return result


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rebuild the cached Plex catalog snapshot used to build swipe decks."
    )
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--apply",
        action="store_true",
        help="Persist the refreshed snapshot. Without this flag, the script runs in dry-run mode.",
    )
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Explicitly run in dry-run mode (default behavior).",
    )
    parser.add_argument(
        "--library-keys",
        default=None,
        help="Comma-separated Plex library section keys. Defaults to PLEX_LIBRARY_KEYS.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-library progress.")
    return parser.parse_args()


async def _main_async(args: argparse.Namespace, library_keys: list[str]) -> CacheRefreshResult:
    async with AsyncSessionLocal() as db:
        return await run_refresh(db, default_catalog(), library_keys=library_keys, apply=args.apply)


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
    )

    library_keys = _parse_library_keys(args.library_keys, settings.plex_library_key_list())
    if not library_keys:
        print("No library keys given and PLEX_LIBRARY_KEYS is empty", file=sys.stderr)
        return 2

    result = asyncio.run(_main_async(args, library_keys))
    for line in _summary_lines(result, apply=args.apply):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
