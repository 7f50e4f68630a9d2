#!/usr/bin/env python3
"""
Command-line maintenance for Backlog Sync.

Usage:
    python -m backlog_sync.cli rebuild <board_id>     # delete + recreate proxies
    python -m backlog_sync.cli lists <board_id>       # show triage list resolution

Credentials and list names come from the same environment variables (or
.env file) as the server.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from backlog_sync.config import load_env_file, load_sync_config, load_trello_settings
from backlog_sync.exceptions import BacklogSyncError
from backlog_sync.services.list_resolver import normalize_list_name
from backlog_sync.services.reconciler import BulkReconciler
from backlog_sync.services.sync_engine import SyncEngine
from backlog_sync.services.trello_client import TrelloBoardRepository


async def _rebuild(engine: SyncEngine, board_id: str) -> int:
    report = await BulkReconciler(engine).rebuild(board_id)
    print(json.dumps(report.model_dump(), indent=2))
    return 1 if report.failed else 0


async def _lists(engine: SyncEngine, board_id: str) -> int:
    names = engine.config.all_list_names
    found = await engine.resolver.resolve(board_id, names)
    for board_list in found:
        print(f"  {board_list.name:<30} {board_list.id}")
    found_names = {normalize_list_name(board_list.name) for board_list in found}
    missing = [name for name in names if normalize_list_name(name) not in found_names]
    for name in missing:
        print(f"  {name:<30} MISSING")
    return 1 if missing else 0


async def run(args: argparse.Namespace) -> int:
    config = load_sync_config()
    settings = load_trello_settings()
    settings.require_credentials()

    async with TrelloBoardRepository(settings) as repository:
        engine = SyncEngine(repository, config)
        if args.command == "rebuild":
            return await _rebuild(engine, args.board_id)
        return await _lists(engine, args.board_id)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Trello backlog sync maintenance")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rebuild = subparsers.add_parser("rebuild", help="Delete and recreate every proxy card")
    rebuild.add_argument("board_id")

    lists = subparsers.add_parser("lists", help="Resolve the configured triage lists")
    lists.add_argument("board_id")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    load_env_file()

    try:
        return asyncio.run(run(args))
    except BacklogSyncError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
