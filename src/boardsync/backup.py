"""Full-state backups, restores and the automatic local snapshot."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from boardsync._constants import (
    ALL_COLLECTIONS,
    APP_NAME,
    AUDIT_LOGS,
    BACKUP_VERSION,
    COMPANY_PROFILE,
    KEY_AUTO_BACKUP,
    KEY_LAST_BACKUP,
    KEY_RESTORE_TIMESTAMP,
)
from boardsync.models.backup import BackupData, BackupDocument, BackupStats, RestoreResult
from boardsync.state.store import CollectionStore
from boardsync.storage import LocalStorage

_logger = logging.getLogger(__name__)

# Audit entries are restored locally but neither counted nor pushed.
_RESTORE_SKIP_PUSH = frozenset({AUDIT_LOGS})


def _stats(store: CollectionStore) -> BackupStats:
    counts = {table: len(store.get(table)) for table in store.collections}
    total = sum(count for table, count in counts.items() if table != AUDIT_LOGS)
    return BackupStats(**counts, total_records=total)


def build_backup(store: CollectionStore, *, now: datetime | None = None) -> BackupDocument:
    now = now or datetime.now(UTC)
    data = BackupData(
        **store.snapshot(),
        company_profile=store.profile,
        company_logo=store.logo,
    )
    return BackupDocument(
        version=BACKUP_VERSION,
        app_name=APP_NAME,
        timestamp=now,
        created_at=now.strftime("%Y-%m-%d %H:%M:%S"),
        stats=_stats(store),
        data=data,
    )


def create_backup(store: CollectionStore) -> str:
    """Serialize every collection, the profile and the logo to a JSON document."""
    document = build_backup(store)
    store.storage.save(KEY_LAST_BACKUP, document.created_at)
    store.write_cloud_mirror()
    _logger.info("Backup created with %d total records", document.stats.total_records)
    store.log_action("System Backup", f"Created backup with {document.stats.total_records} records")
    return json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False)


async def restore_backup(store: CollectionStore, text: str, *, clock_ms: int | None = None) -> RestoreResult:
    """Replace local state with a backup and push every restored row remotely.

    Collections absent from the document are left as they are. Invalid JSON
    or a document without ``data`` restores nothing.
    """
    try:
        raw: Any = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        _logger.error("Invalid backup: not JSON")
        return RestoreResult(success=False)
    if not isinstance(raw, dict) or not isinstance(raw.get("data"), dict):
        _logger.error("Invalid backup format: missing data property")
        return RestoreResult(success=False)
    try:
        document = BackupDocument.model_validate({"version": "", **raw})
    except ValidationError:
        _logger.error("Invalid backup format", exc_info=True)
        return RestoreResult(success=False)

    _logger.info("Restoring backup from %s", document.timestamp or "unknown date")
    restored: dict[str, list[dict[str, Any]]] = {}
    count = 0
    for table in ALL_COLLECTIONS:
        rows = document.data.collection(table)
        if rows is None or table not in store.collections:
            continue
        store.replace(table, rows)
        restored[table] = rows
        if table not in _RESTORE_SKIP_PUSH:
            count += len(rows)
        _logger.info("Restored %d %s", len(rows), table)

    if document.data.company_profile is not None:
        store.set_profile(document.data.company_profile, push=False)
    if document.data.company_logo is not None:
        store.set_logo(document.data.company_logo, push=False)

    restored_at = datetime.now(UTC)
    stamp = clock_ms if clock_ms is not None else int(restored_at.timestamp() * 1000)
    store.storage.save(KEY_RESTORE_TIMESTAMP, stamp)

    outbox = store.outbox
    sends = [
        outbox.send(table, row)
        for table, rows in restored.items()
        if table not in _RESTORE_SKIP_PUSH
        for row in rows
    ]
    if document.data.company_profile is not None or document.data.company_logo is not None:
        sends.append(outbox.send(COMPANY_PROFILE, store.profile_payload()))
    if sends:
        results = await asyncio.gather(*sends)
        _logger.info("Pushed %d/%d restored records to the remote store", sum(results), len(results))

    store.log_action("System Restore", f"Restored {count} records from backup")
    store.notify()
    return RestoreResult(success=True, count=count, restored_at=restored_at)


def write_auto_backup(store: CollectionStore) -> str:
    """Store a full snapshot in the recreatable auto-backup key."""
    now = datetime.now(UTC)
    payload = {
        "timestamp": now.isoformat(),
        "data": {**store.snapshot(), "companyProfile": store.profile, "companyLogo": store.logo},
    }
    store.storage.save(KEY_AUTO_BACKUP, payload)
    store.write_cloud_mirror()
    return now.isoformat()


def auto_backup_status(storage: LocalStorage) -> str | None:
    """Timestamp of the last automatic snapshot, or ``None``."""
    snapshot = storage.load(KEY_AUTO_BACKUP, None)
    if not isinstance(snapshot, dict):
        return None
    timestamp = snapshot.get("timestamp")
    return timestamp if isinstance(timestamp, str) else None
