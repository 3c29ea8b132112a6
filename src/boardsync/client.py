"""High-level async client tying the cache, the queues and the remote store together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from boardsync import backup as _backup
from boardsync._constants import ALL_COLLECTIONS, INTEGRITY_COLLECTIONS, KEY_CLOUD_BACKUP
from boardsync.config import SyncConfig
from boardsync.exceptions import BoardSyncError
from boardsync.models.backup import RestoreResult
from boardsync.models.reports import CollectionCount, IntegrityReport
from boardsync.queues import DeletionQueue, UpsertOutbox
from boardsync.remote import RemoteStore, RestRemoteStore
from boardsync.state.engine import ReconciliationEngine
from boardsync.state.listeners import Listener, ListenerRegistry
from boardsync.state.store import CollectionStore, Record
from boardsync.storage import FileBackend, LocalStorage, MemoryBackend

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class SyncClient:
    """Async client keeping a local cache in step with the remote store.

    Usage::

        async with SyncClient(SyncConfig.from_env()) as client:
            await client.pull_all()
            client.start()
            client.add("billboards", {"id": f"billboard-{now_ms}", "name": "Harare North"})
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        storage: LocalStorage | None = None,
        remote: RemoteStore | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._injected_remote = remote
        self._remote: RemoteStore | None = remote
        self._clock = clock
        self._storage = storage if storage is not None else self._default_storage(config)
        self._listeners = ListenerRegistry()
        self._store: CollectionStore | None = None
        self._engine: ReconciliationEngine | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

    @staticmethod
    def _default_storage(config: SyncConfig) -> LocalStorage:
        if config.storage_dir:
            return LocalStorage(FileBackend(config.storage_dir, quota_bytes=config.storage_quota_bytes))
        return LocalStorage(MemoryBackend(quota_bytes=config.storage_quota_bytes))

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncClient:
        if self._remote is None and self._config.remote_enabled:
            self._config.validate()
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._remote = RestRemoteStore(self._config, self._http_session)
        elif self._remote is None:
            _logger.warning("Remote store not configured; running on the local cache only")
        self._build()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        store = self._store
        if store is not None:
            await store.deletions.wait_idle()
            await store.outbox.wait_idle()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if self._injected_remote is None:
            self._remote = None
        self._engine = None

    def _build(self) -> None:
        deletions = DeletionQueue(self._storage, self._remote, clock=self._clock)
        outbox = UpsertOutbox(self._storage, self._remote, clock=self._clock)
        self._store = CollectionStore(self._storage, deletions, outbox, listeners=self._listeners, clock=self._clock)
        if self._remote is not None:
            self._engine = ReconciliationEngine(
                self._store,
                self._remote,
                settings=self._config.reconcile,
                clock=self._clock,
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def store(self) -> CollectionStore:
        if self._store is None:
            raise BoardSyncError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._store

    @property
    def storage(self) -> LocalStorage:
        return self._storage

    @property
    def is_running(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def pull_all(self) -> bool:
        """Replace the local cache with the remote snapshot (startup/login)."""
        engine = self._engine
        if engine is None:
            _logger.warning("Remote store not configured, using local cache")
            return False
        synced = await engine.pull_all(ALL_COLLECTIONS)
        _logger.info("Full pull complete: %d/%d tables loaded", synced, len(ALL_COLLECTIONS))
        return True

    async def trigger_full_sync(self) -> bool:
        """Run one reconciliation pass. Returns ``False`` only when sync is impossible."""
        store = self.store
        store.refresh_external_changes()
        engine = self._engine
        if engine is None:
            return False
        try:
            await engine.run_pass()
        except Exception:
            _logger.error("Reconciliation pass failed", exc_info=True)
            return False
        return True

    async def sync_now(self) -> bool:
        """Manual "cloud sync": a full pass plus a fresh mirror and backup stamp."""
        ok = await self.trigger_full_sync()
        self.store.write_cloud_mirror()
        self._storage.save(KEY_CLOUD_BACKUP, time.strftime("%Y-%m-%d %H:%M:%S"))
        self.store.log_action("System", "Cloud backup completed successfully (Redundant Mirror)")
        self.store.notify()
        return ok

    def on_focus(self) -> None:
        """Request an immediate pass (window focus, app resume...)."""
        self._wakeup.set()

    def start(self) -> None:
        """Start the periodic background sync loop."""
        if self.is_running:
            return
        self._sync_task = asyncio.get_running_loop().create_task(self._run_loop(), name="boardsync-loop")

    async def stop(self) -> None:
        task = self._sync_task
        self._sync_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_backup = loop.time() + self._config.auto_backup_interval
        while True:
            await self.trigger_full_sync()
            if self._config.auto_backup_interval > 0 and loop.time() >= next_backup:
                try:
                    _backup.write_auto_backup(self.store)
                except Exception:
                    _logger.warning("Auto-backup failed", exc_info=True)
                next_backup = loop.time() + self._config.auto_backup_interval
            self._wakeup.clear()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), self._config.sync_interval)

    async def verify_integrity(self) -> IntegrityReport | None:
        """Compare local and remote row counts; ``None`` if the remote is unreachable."""
        remote = self._remote
        if remote is None:
            return None
        try:
            remote_counts = await asyncio.gather(*(remote.count(table) for table in INTEGRITY_COLLECTIONS))
        except Exception:
            _logger.warning("Integrity check failed", exc_info=True)
            return None
        return IntegrityReport(
            collections={
                table: CollectionCount(local=len(self.store.get(table)), remote=remote_count)
                for table, remote_count in zip(INTEGRITY_COLLECTIONS, remote_counts, strict=True)
            }
        )

    # ------------------------------------------------------------------
    # Store pass-through
    # ------------------------------------------------------------------

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return self._listeners.subscribe(callback)

    def get(self, table: str) -> list[Record]:
        return self.store.get(table)

    def add(self, table: str, record: Mapping[str, Any]) -> Record:
        return self.store.add(table, record)

    def update(self, table: str, record: Mapping[str, Any]) -> Record:
        return self.store.update(table, record)

    def delete(self, table: str, record_id: str) -> bool:
        return self.store.delete(table, record_id)

    def create_backup(self) -> str:
        return _backup.create_backup(self.store)

    async def restore_backup(self, text: str) -> RestoreResult:
        return await _backup.restore_backup(self.store, text, clock_ms=self._clock())

    def storage_usage_kib(self) -> float:
        return self._storage.usage_kib()
