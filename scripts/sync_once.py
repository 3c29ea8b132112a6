#!/usr/bin/env python3
"""Run one reconciliation pass against a live project and report the result.

Pulls every collection into a local cache directory, runs a full pass,
prints per-collection row counts and the integrity report, and can
optionally write a backup file.

Usage
-----
Set environment variables and run::

    export BOARDSYNC_URL="https://xyz.supabase.co"
    export BOARDSYNC_API_KEY="eyJ..."
    python scripts/sync_once.py --storage-dir .boardsync-cache

Options::

    --storage-dir DIR    Keep the local cache in DIR (default: in memory)
    --no-pull            Skip the initial full pull and reconcile the cache as is
    --backup FILE        Write a backup document to FILE after syncing
    --json               Output as machine-readable JSON
    --verbose, -v        Enable debug logging (request traces are redacted)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from boardsync import SyncClient, SyncConfig  # noqa: E402
from boardsync._constants import ALL_COLLECTIONS  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


async def main() -> int:
    parser = argparse.ArgumentParser(
        description="Pull, reconcile and verify the local cache against the remote store.",
    )
    parser.add_argument("--storage-dir", help="Keep the local cache in this directory")
    parser.add_argument("--no-pull", action="store_true", help="Skip the initial full pull")
    parser.add_argument("--backup", help="Write a backup document to FILE after syncing")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {"api_trace_enabled": args.verbose}
    if args.storage_dir:
        overrides["storage_dir"] = args.storage_dir
    config = SyncConfig.from_env(**overrides)
    if not config.remote_enabled:
        print("BOARDSYNC_URL and BOARDSYNC_API_KEY must be set", file=sys.stderr)
        return 2

    result: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat(), "url": config.base_url}

    async with SyncClient(config) as client:
        if not args.no_pull:
            result["pulled"] = await client.pull_all()
        result["reconciled"] = await client.trigger_full_sync()
        result["counts"] = {table: len(client.get(table)) for table in ALL_COLLECTIONS}
        result["pending_deletions"] = len(client.store.deletions)
        result["pending_upserts"] = len(client.store.outbox)

        report = await client.verify_integrity()
        result["integrity"] = report.to_json_dict() if report is not None else None
        result["mismatched"] = report.mismatched if report is not None else None

        if args.backup:
            Path(args.backup).write_text(client.create_backup(), encoding="utf-8")
            result["backup"] = args.backup
        result["storage_kib"] = client.storage_usage_kib()

    if args.json_mode:
        print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
        return 0

    out: list[str] = [_section("boardsync sync_once")]
    out.append(f"  time      : {result['timestamp']}")
    out.append(f"  url       : {result['url']}")
    out.append(f"  reconciled: {result['reconciled']}")
    out.append(_section("COLLECTIONS"))
    for table, count in result["counts"].items():
        out.append(f"  {table:<22} {count}")
    out.append(f"\n  pending deletions: {result['pending_deletions']}")
    out.append(f"  pending upserts  : {result['pending_upserts']}")
    out.append(_section("INTEGRITY"))
    if report is None:
        out.append("  remote unreachable")
    else:
        for table, count in report.collections.items():
            marker = "ok" if count.in_sync else "MISMATCH"
            out.append(f"  {table:<22} local={count.local:<6} remote={count.remote:<6} {marker}")
    if args.backup:
        out.append(f"\n  backup written to {args.backup}")
    out.append(f"  local cache: {result['storage_kib']} KiB")
    print("\n".join(out))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
