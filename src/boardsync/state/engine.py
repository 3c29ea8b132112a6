"""Reconciliation of the local cache against the remote store.

One *pass* over a collection fetches the full remote table, keeps the remote
rows (minus ids pending local deletion) and re-adds local-only rows the
policy classifies as local creations. Conflicts are whole-record
last-writer-wins, in the order writes reach the remote store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field
from typing import Any

from boardsync._constants import AUDIT_LOGS, COMPANY_PROFILE, KEY_RESTORE_TIMESTAMP, PROFILE_ID, TICK_COLLECTIONS
from boardsync.config import ReconcileSettings
from boardsync.queues import DeletionQueue, UpsertOutbox
from boardsync.remote import RemoteStore
from boardsync.state.policy import LocalOnlyVerdict, classify_local_only, is_recent_restore
from boardsync.state.store import CollectionStore, Record

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class MergeResult:
    """Outcome of merging one collection; never persisted."""

    merged: list[Record]
    pushed: list[Record] = field(default_factory=list)
    dropped: dict[str, LocalOnlyVerdict] = field(default_factory=dict)
    changed: bool = False


def merge_collection(
    table: str,
    local: list[Record],
    remote: list[Record],
    pending_delete_ids: Collection[str],
    *,
    now_ms: int,
    recent_restore: bool,
    settings: ReconcileSettings,
) -> MergeResult:
    """Compute the new local state for *table*.

    Remote rows come first in remote order, then the kept local-only rows in
    local order. Each kept local-only row is listed in ``pushed`` once.
    """
    remote_ids = {row.get("id") for row in remote}
    merged = [row for row in remote if row.get("id") not in pending_delete_ids]
    merged_ids = {row.get("id") for row in merged}

    result = MergeResult(merged=merged)
    for row in local:
        row_id = row.get("id")
        if row_id in remote_ids:
            continue
        verdict = classify_local_only(
            row,
            table=table,
            pending_delete_ids=pending_delete_ids,
            now_ms=now_ms,
            recent_restore=recent_restore,
            settings=settings,
        )
        if not verdict.keep:
            result.dropped[str(row_id)] = verdict
            continue
        if row_id in merged_ids:
            continue
        merged.append(row)
        merged_ids.add(row_id)
        result.pushed.append(row)

    result.changed = merged != local
    return result


class ReconciliationEngine:
    """Runs reconciliation passes for a :class:`CollectionStore`.

    Passes over the same collection are serialized by a per-collection
    :class:`asyncio.Lock`; different collections proceed concurrently.
    Remote failures abort the affected collection only and are logged.
    """

    def __init__(
        self,
        store: CollectionStore,
        remote: RemoteStore,
        *,
        settings: ReconcileSettings | None = None,
        clock: Callable[[], int] = _now_ms,
        collections: Iterable[str] = TICK_COLLECTIONS,
    ) -> None:
        self._store = store
        self._remote = remote
        self._settings = settings if settings is not None else ReconcileSettings()
        self._clock = clock
        self._collections = tuple(collections)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def deletions(self) -> DeletionQueue:
        return self._store.deletions

    @property
    def outbox(self) -> UpsertOutbox:
        return self._store.outbox

    def _lock(self, table: str) -> asyncio.Lock:
        lock = self._locks.get(table)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[table] = lock
        return lock

    def recent_restore(self) -> bool:
        raw = self._store.storage.load(KEY_RESTORE_TIMESTAMP, None)
        try:
            restore_ts = int(raw) if raw is not None else None
        except (TypeError, ValueError):
            restore_ts = None
        return is_recent_restore(restore_ts, self._clock(), self._settings.restore_window_s)

    async def reconcile(self, table: str, *, recent_restore: bool | None = None) -> bool:
        """Run one pass over *table*; return whether the local cache changed."""
        async with self._lock(table):
            try:
                remote_rows = await self._remote.select_all(table)
            except Exception:
                _logger.warning("Sync fetch failed for %s; keeping local state", table, exc_info=True)
                return False

            result = merge_collection(
                table,
                self._store.get(table),
                remote_rows,
                self.deletions.pending_ids(table),
                now_ms=self._clock(),
                recent_restore=self.recent_restore() if recent_restore is None else recent_restore,
                settings=self._settings,
            )
            # No await between the fetch and this replace.
            if result.changed:
                self._store.replace(table, result.merged)
            if result.dropped:
                _logger.debug("Dropped local-only rows from %s: %s", table, result.dropped)
            if result.pushed:
                await asyncio.gather(*(self.outbox.send(table, row) for row in result.pushed))
            return result.changed

    async def sync_profile(self, *, recent_restore: bool) -> bool:
        """Reconcile the single company profile row."""
        try:
            remote_profile = await self._remote.select_one(COMPANY_PROFILE, PROFILE_ID)
        except Exception:
            _logger.warning("Profile fetch failed; keeping local profile", exc_info=True)
            return False

        if remote_profile is None or recent_restore:
            await self.outbox.send(COMPANY_PROFILE, self._store.profile_payload())
            return False

        changed = False
        remote_fields = {k: v for k, v in remote_profile.items() if k not in ("id", "logo")}
        if remote_fields != self._store.profile:
            self._store.set_profile(remote_fields, push=False)
            changed = True
        logo = remote_profile.get("logo")
        if isinstance(logo, str) and logo and logo != self._store.logo:
            self._store.set_logo(logo, push=False)
            changed = True
        return changed

    async def run_pass(self) -> bool:
        """Flush queued writes, reconcile every tick collection and notify once on change."""
        await self.deletions.flush()
        await self.outbox.flush()

        recent_restore = self.recent_restore()
        results = await asyncio.gather(
            *(self.reconcile(table, recent_restore=recent_restore) for table in self._collections),
            return_exceptions=True,
        )
        changed = False
        for table, outcome in zip(self._collections, results, strict=True):
            if isinstance(outcome, BaseException):
                _logger.error("Sync error %s", table, exc_info=outcome)
            elif outcome:
                changed = True

        if await self.sync_profile(recent_restore=recent_restore):
            changed = True

        if changed:
            self._store.notify()
        return changed

    async def pull_all(self, collections: Iterable[str]) -> int:
        """Replace collections wholesale from the remote store; return how many loaded."""
        synced = 0
        changed = False
        for table in collections:
            async with self._lock(table):
                try:
                    rows = await self._remote.select_all(table)
                except Exception:
                    _logger.warning("Error fetching %s during full pull", table, exc_info=True)
                    continue
                if table == AUDIT_LOGS:
                    rows = sorted(rows, key=_audit_sort_key, reverse=True)
                changed = self._store.replace(table, rows) or changed
                synced += 1
                _logger.info("Synced %d records from %s", len(rows), table)
        try:
            remote_profile = await self._remote.select_one(COMPANY_PROFILE, PROFILE_ID)
        except Exception:
            _logger.info("No company profile found remotely", exc_info=True)
            remote_profile = None
        if remote_profile:
            merged = {key: remote_profile.get(key) or value for key, value in self._store.profile.items()}
            self._store.set_profile(merged, push=False)
            if remote_profile.get("logo"):
                self._store.set_logo(str(remote_profile["logo"]), push=False)
        self._store.synced = True
        self._store.notify()
        return synced


def _audit_sort_key(row: dict[str, Any]) -> str:
    return str(row.get("timestamp", ""))
