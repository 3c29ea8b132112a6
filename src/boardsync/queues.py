"""Durable queues of remote writes that have not been acknowledged yet.

:class:`DeletionQueue` guarantees that a local deletion is eventually applied
remotely, surviving restarts. :class:`UpsertOutbox` does the same for
creates/updates whose remote upsert failed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Mapping
from typing import Any

from pydantic import ValidationError

from boardsync._constants import KEY_DELETED_QUEUE, KEY_PENDING_UPSERTS
from boardsync.models.queue import DeletedItem, PendingUpsert
from boardsync.remote import RemoteStore
from boardsync.storage import LocalStorage

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class _BackgroundTasks:
    """Fire-and-forget coroutines scheduled on the running loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return False
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def drain(self) -> None:
        """Wait for every scheduled attempt to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class DeletionQueue:
    """Ordered, persisted list of pending remote deletions.

    Entries are removed only after the remote store acknowledges the delete.
    There is no backoff and no retry cap.
    """

    def __init__(
        self,
        storage: LocalStorage,
        remote: RemoteStore | None,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._storage = storage
        self._remote = remote
        self._clock = clock
        self._background = _BackgroundTasks()
        self._items: list[DeletedItem] = []
        self.reload()

    def reload(self) -> None:
        """Re-read the queue from storage (e.g. after another process wrote it)."""
        raw = self._storage.load(KEY_DELETED_QUEUE, [])
        items: list[DeletedItem] = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                items.append(DeletedItem.model_validate(entry))
            except ValidationError:
                _logger.warning("Dropping malformed deletion queue entry: %r", entry)
        self._items = items

    def _persist(self) -> None:
        self._storage.save(KEY_DELETED_QUEUE, [item.to_json_dict() for item in self._items])

    @property
    def entries(self) -> list[DeletedItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return any(item.key == key for item in self._items)

    def pending_ids(self, table: str) -> set[str]:
        return {item.id for item in self._items if item.table == table}

    def enqueue(self, table: str, record_id: str) -> None:
        """Queue a deletion and start a best-effort remote delete.

        Enqueueing the same ``(table, id)`` twice leaves one entry.
        """
        if (table, record_id) not in self:
            self._items.append(DeletedItem(table=table, id=record_id, timestamp=self._clock()))
            self._persist()
        if self._remote is not None:
            self._background.spawn(self._attempt(table, record_id))

    async def _attempt(self, table: str, record_id: str) -> bool:
        if self._remote is None:
            return False
        try:
            await self._remote.delete(table, record_id)
        except Exception:
            _logger.warning("Remote delete failed for %s/%s; keeping it queued", table, record_id, exc_info=True)
            return False
        self._acknowledge(table, record_id)
        return True

    def _acknowledge(self, table: str, record_id: str) -> None:
        remaining = [item for item in self._items if item.key != (table, record_id)]
        if len(remaining) != len(self._items):
            self._items = remaining
            self._persist()

    async def flush(self) -> int:
        """Attempt every queued deletion; return how many are still pending."""
        if self._remote is None or not self._items:
            return len(self._items)
        for item in list(self._items):
            await self._attempt(item.table, item.id)
        return len(self._items)

    async def wait_idle(self) -> None:
        await self._background.drain()


class UpsertOutbox:
    """Retry queue for creates/updates the remote store did not accept."""

    def __init__(
        self,
        storage: LocalStorage,
        remote: RemoteStore | None,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._storage = storage
        self._remote = remote
        self._clock = clock
        self._background = _BackgroundTasks()
        self._items: dict[tuple[str, str], PendingUpsert] = {}
        # Bumped by discard(); a send that started under an older value is stale.
        self._generations: dict[tuple[str, str], int] = {}
        self.reload()

    def reload(self) -> None:
        raw = self._storage.load(KEY_PENDING_UPSERTS, [])
        items: dict[tuple[str, str], PendingUpsert] = {}
        for entry in raw if isinstance(raw, list) else []:
            try:
                pending = PendingUpsert.model_validate(entry)
            except ValidationError:
                _logger.warning("Dropping malformed pending upsert: %r", entry)
                continue
            items[pending.key] = pending
        self._items = items

    def _persist(self) -> None:
        self._storage.save(KEY_PENDING_UPSERTS, [item.to_json_dict() for item in self._items.values()])

    @property
    def entries(self) -> list[PendingUpsert]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def push(self, table: str, record: Mapping[str, Any]) -> None:
        """Schedule an upsert without waiting for it."""
        if self._remote is None:
            return
        if not self._background.spawn(self.send(table, record)):
            self._queue(table, record)

    async def send(self, table: str, record: Mapping[str, Any]) -> bool:
        """Upsert *record* now; queue it for retry on failure."""
        if self._remote is None:
            return False
        record_id = str(record.get("id", ""))
        key = (table, record_id)
        generation = self._generations.get(key, 0)
        _logger.debug("Syncing %s/%s", table, record_id)
        try:
            await self._remote.upsert(table, record)
        except Exception:
            if self._generations.get(key, 0) != generation:
                _logger.debug("Remote upsert failed for discarded %s/%s; not retrying", table, record_id)
                return False
            _logger.warning("Remote upsert failed for %s/%s; queued for retry", table, record_id, exc_info=True)
            self._queue(table, record)
            return False
        self._settle(table, record_id, record)
        return True

    def _queue(self, table: str, record: Mapping[str, Any]) -> None:
        pending = PendingUpsert(table=table, record=dict(record), timestamp=self._clock())
        self._items[pending.key] = pending
        self._persist()

    def _settle(self, table: str, record_id: str, record: Mapping[str, Any]) -> None:
        queued = self._items.get((table, record_id))
        # A newer local edit queued meanwhile must still be retried.
        if queued is not None and queued.record == dict(record):
            del self._items[(table, record_id)]
            self._persist()

    def discard(self, table: str, record_id: str) -> None:
        """Drop any queued upsert for the row; sends already in flight are not re-queued."""
        key = (table, record_id)
        self._generations[key] = self._generations.get(key, 0) + 1
        if self._items.pop(key, None) is not None:
            self._persist()

    async def flush(self) -> int:
        """Retry every queued upsert; return how many are still pending."""
        if self._remote is None or not self._items:
            return len(self._items)
        for pending in list(self._items.values()):
            await self.send(pending.table, pending.record)
        return len(self._items)

    async def wait_idle(self) -> None:
        await self._background.drain()
