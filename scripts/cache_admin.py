"""Inspect and maintain the persistent fetch cache."""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence
from pathlib import Path

from cache.sqlite_cache import SQLiteCache
from utils.config import ResilienceConfig
from utils.errors import CacheUnavailableError
from utils.logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and maintain the fetch cache")
    parser.add_argument(
        "--db-path",
        help="Cache file to operate on (defaults to CACHE_DB_PATH or the user cache)",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="Print entry counts and file size")
    sub.add_parser("sweep", help="Delete expired entries")
    clear = sub.add_parser("clear", help="Delete every entry, or one source's entries")
    clear.add_argument("--source", help="Only clear entries for this source")
    return parser


def run(args: argparse.Namespace) -> dict[str, object]:
    """Execute one admin command and return its JSON-ready result."""
    path = Path(args.db_path) if args.db_path else ResilienceConfig.from_env().cache_path
    cache = SQLiteCache(path)
    if args.command == "stats":
        return cache.stats().model_dump()
    if args.command == "sweep":
        return {"removed": cache.clear_expired()}
    if args.source:
        return {"removed": cache.clear_by_source(args.source), "source": args.source}
    return {"removed": cache.clear_all()}


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("cache-admin")
    try:
        result = run(args)
    except CacheUnavailableError as exc:
        raise SystemExit(f"cache unavailable: {exc}") from exc
    print(json.dumps(result, sort_keys=True))


if __name__ == "__main__":
    main()
