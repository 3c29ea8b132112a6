"""Local collection cache with optimistic mutations.

This is the only component that owns the in-memory collections. Every
mutation is applied locally first, persisted, pushed to the remote store in
the background (deletions through the deletion queue) and then announced to
listeners.
"""

from __future__ import annotations

import copy
import logging
import secrets
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from boardsync._constants import (
    ALL_COLLECTIONS,
    AUDIT_LOGS,
    BILLBOARDS,
    COMPANY_PROFILE,
    DEFAULT_LOGO,
    DEFAULT_PROFILE,
    INVOICES,
    KEY_CLOUD_MIRROR,
    KEY_DELETED_QUEUE,
    KEY_LOGO,
    KEY_PROFILE,
    MAINTENANCE_LOGS,
    MAX_LOCAL_AUDIT_ENTRIES,
    PREPEND_COLLECTIONS,
    PROFILE_ID,
    STORAGE_KEYS,
)
from boardsync.queues import DeletionQueue, UpsertOutbox
from boardsync.state.listeners import Listener, ListenerRegistry
from boardsync.storage import LocalStorage

_logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _require_id(record: Mapping[str, Any]) -> str:
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValueError("record must carry a non-empty string 'id'")
    return record_id


class CollectionStore:
    """Entity collections cached locally and mirrored to durable storage.

    Construct once at startup and pass it to consumers; there is no module
    level state.
    """

    def __init__(
        self,
        storage: LocalStorage,
        deletions: DeletionQueue,
        outbox: UpsertOutbox,
        *,
        listeners: ListenerRegistry | None = None,
        clock: Callable[[], int] = _now_ms,
        collections: Iterable[str] = ALL_COLLECTIONS,
    ) -> None:
        self._storage = storage
        self._deletions = deletions
        self._outbox = outbox
        self._listeners = listeners if listeners is not None else ListenerRegistry()
        self._clock = clock
        self._collections: dict[str, list[Record]] = {}
        for table in collections:
            self._collections[table] = self._load_rows(table)
        profile = storage.load(KEY_PROFILE, None)
        self._profile: dict[str, Any] = profile if isinstance(profile, dict) else dict(DEFAULT_PROFILE)
        logo = storage.load(KEY_LOGO, None)
        self._logo: str = logo if isinstance(logo, str) and logo else DEFAULT_LOGO
        self.current_user: str = "System"
        self.synced = False

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def storage(self) -> LocalStorage:
        return self._storage

    @property
    def deletions(self) -> DeletionQueue:
        return self._deletions

    @property
    def outbox(self) -> UpsertOutbox:
        return self._outbox

    @property
    def collections(self) -> tuple[str, ...]:
        return tuple(self._collections)

    def _storage_key(self, table: str) -> str:
        return STORAGE_KEYS.get(table, f"db_{table}")

    def _load_rows(self, table: str) -> list[Record]:
        rows = self._storage.load(self._storage_key(table), [])
        if not isinstance(rows, list):
            _logger.warning("Ignoring non-list cache for %s", table)
            return []
        return [row for row in rows if isinstance(row, dict)]

    def _rows(self, table: str) -> list[Record]:
        try:
            return self._collections[table]
        except KeyError:
            raise KeyError(f"unknown collection {table!r}") from None

    def _commit(self, table: str) -> None:
        self._storage.save(self._storage_key(table), self._collections[table])

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return self._listeners.subscribe(callback)

    def notify(self) -> None:
        self._listeners.notify()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, table: str) -> list[Record]:
        return copy.deepcopy(self._rows(table))

    def find(self, table: str, record_id: str) -> Record | None:
        for row in self._rows(table):
            if row.get("id") == record_id:
                return copy.deepcopy(row)
        return None

    def snapshot(self) -> dict[str, list[Record]]:
        return {table: copy.deepcopy(rows) for table, rows in self._collections.items()}

    @property
    def profile(self) -> dict[str, Any]:
        return dict(self._profile)

    @property
    def logo(self) -> str:
        return self._logo

    # ------------------------------------------------------------------
    # Wholesale replacement (reconciliation, pull, restore)
    # ------------------------------------------------------------------

    def replace(self, table: str, rows: list[Record]) -> bool:
        """Swap a collection for *rows* and persist it. Returns whether it changed."""
        current = self._rows(table)
        if current == rows:
            return False
        self._collections[table] = copy.deepcopy(rows)
        self._commit(table)
        return True

    def reload(self, table: str) -> bool:
        """Re-read one collection from storage."""
        rows = self._load_rows(table)
        if rows == self._collections.get(table):
            return False
        self._collections[table] = rows
        return True

    def refresh_external_changes(self) -> bool:
        """Pick up writes another process made to the shared storage."""
        key_to_table = {self._storage_key(table): table for table in self._collections}
        watched = [*key_to_table, KEY_PROFILE, KEY_DELETED_QUEUE]
        changed = False
        for key in self._storage.poll_external_changes(watched):
            if key == KEY_DELETED_QUEUE:
                # Only on an external write: a dropped local save must not erase queued deletions.
                self._deletions.reload()
            elif key == KEY_PROFILE:
                profile = self._storage.load(KEY_PROFILE, None)
                if isinstance(profile, dict):
                    self._profile = profile
                    changed = True
            else:
                changed = self.reload(key_to_table[key]) or changed
        if changed:
            _logger.debug("Reloaded collections changed by another process")
            self.notify()
        return changed

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, table: str, record: Mapping[str, Any], *, audit: str | None = None) -> Record:
        record_id = _require_id(record)
        rows = self._rows(table)
        new_row = copy.deepcopy(dict(record))
        self._collections[table] = [new_row, *rows] if table in PREPEND_COLLECTIONS else [*rows, new_row]
        self._after_write(table, new_row, audit or f"Added {table} record {record_id}", "Create")
        return copy.deepcopy(new_row)

    def update(self, table: str, record: Mapping[str, Any], *, audit: str | None = None) -> Record:
        record_id = _require_id(record)
        updated = copy.deepcopy(dict(record))
        self._collections[table] = [updated if row.get("id") == record_id else row for row in self._rows(table)]
        self._after_write(table, updated, audit or f"Updated {table} record {record_id}", "Update")
        return copy.deepcopy(updated)

    def delete(self, table: str, record_id: str, *, audit: str | None = None) -> bool:
        rows = self._rows(table)
        remaining = [row for row in rows if row.get("id") != record_id]
        if len(remaining) == len(rows):
            return False
        self._collections[table] = remaining
        self._commit(table)
        self.write_cloud_mirror()
        self._outbox.discard(table, record_id)
        self._deletions.enqueue(table, record_id)
        self.log_action(f"Delete {table}", audit or f"Removed {table} record {record_id}")
        self.notify()
        return True

    def _after_write(self, table: str, record: Record, details: str, verb: str) -> None:
        self._commit(table)
        self.write_cloud_mirror()
        self._outbox.push(table, record)
        self.log_action(f"{verb} {table}", details)
        self.notify()

    def mark_invoice_paid(self, invoice_id: str) -> Record | None:
        invoice = self.find(INVOICES, invoice_id)
        if invoice is None:
            return None
        invoice["status"] = "Paid"
        return self.update(INVOICES, invoice, audit=f"Marked Invoice #{invoice_id} as Paid")

    def add_maintenance_log(self, log: Mapping[str, Any]) -> Record:
        """Record maintenance and stamp the billboard's ``lastMaintenanceDate``."""
        added = self.add(MAINTENANCE_LOGS, log, audit=f"Logged maintenance for {log.get('billboardId')}")
        billboard = self.find(BILLBOARDS, str(log.get("billboardId", "")))
        if billboard is not None and log.get("date"):
            billboard["lastMaintenanceDate"] = log["date"]
            self.update(BILLBOARDS, billboard)
        return added

    # ------------------------------------------------------------------
    # Company profile / logo (single remote row ``profile_v1``)
    # ------------------------------------------------------------------

    def profile_payload(self) -> Record:
        return {**self._profile, "id": PROFILE_ID, "logo": self._logo}

    def set_profile(self, profile: Mapping[str, Any], *, push: bool = True) -> None:
        self._profile = {k: v for k, v in profile.items() if k not in ("id", "logo")}
        self._storage.save(KEY_PROFILE, self._profile)
        if push:
            self._outbox.push(COMPANY_PROFILE, self.profile_payload())
            self.log_action("Settings Update", "Updated company profile details")
            self.notify()

    def set_logo(self, url: str, *, push: bool = True) -> None:
        self._logo = url or DEFAULT_LOGO
        self._storage.save(KEY_LOGO, self._logo)
        if push:
            self._outbox.push(COMPANY_PROFILE, self.profile_payload())
            self.log_action("Settings Update", "Updated company logo")
            self.notify()

    # ------------------------------------------------------------------
    # Audit trail and mirror
    # ------------------------------------------------------------------

    def log_action(self, action: str, details: str, user: str | None = None) -> Record | None:
        if AUDIT_LOGS not in self._collections:
            return None
        entry: Record = {
            "id": f"log-{self._clock()}-{secrets.token_hex(3)}",
            "timestamp": datetime.now(UTC).isoformat(),
            "action": action,
            "details": details,
            "user": user or self.current_user,
        }
        self._collections[AUDIT_LOGS] = [entry, *self._collections[AUDIT_LOGS]][:MAX_LOCAL_AUDIT_ENTRIES]
        self._commit(AUDIT_LOGS)
        self._outbox.push(AUDIT_LOGS, entry)
        return entry

    def write_cloud_mirror(self) -> None:
        """Snapshot everything into the recreatable mirror key."""
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "data": {**self.snapshot(), "companyProfile": self._profile, "companyLogo": self._logo},
        }
        self._storage.save(KEY_CLOUD_MIRROR, payload)
