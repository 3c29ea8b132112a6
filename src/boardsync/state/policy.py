"""Classification of local-only rows during reconciliation.

A row present in the local cache but absent from the latest remote snapshot
is either a local creation that has not reached the remote store yet, or a
row another session deleted. Nothing in the data says which, so the policy
below guesses from creation time, id shape and recent restores.
"""

from __future__ import annotations

import enum
from collections.abc import Collection, Mapping
from datetime import datetime
from typing import Any

from boardsync.config import ReconcileSettings
from boardsync.models._base import parse_epoch_timestamp

# Id segments shorter than this are never read as timestamps.
_MIN_TIMESTAMP_SEGMENT = 11
# Longer digit runs are opaque ids, not epoch milliseconds.
_MAX_TIMESTAMP_SEGMENT = 19

_CREATED_AT_KEYS: tuple[str, ...] = ("createdAt", "created_at")


class LocalOnlyVerdict(enum.StrEnum):
    PENDING_DELETE = "pending_delete"
    NEW_LOCAL = "new_local"
    STATIC_ID = "static_id"
    RESTORED = "restored"
    ALWAYS_KEEP = "always_keep"
    STALE = "stale"

    @property
    def keep(self) -> bool:
        return self not in (LocalOnlyVerdict.PENDING_DELETE, LocalOnlyVerdict.STALE)


def timestamp_from_id(record_id: str) -> int | None:
    """Return the epoch-ms timestamp embedded in an id like ``billboard-1700000000000``.

    The first ``-`` separated segment of 11 to 19 ASCII digits wins.
    Exponents, signs, decimals and underscores are not timestamps.
    """
    for part in record_id.split("-"):
        if _MIN_TIMESTAMP_SEGMENT <= len(part) <= _MAX_TIMESTAMP_SEGMENT and part.isascii() and part.isdigit():
            return int(part)
    return None


def created_at_ms(record: Mapping[str, Any]) -> int | None:
    """Return an explicit creation time in epoch ms, if the record carries one."""
    for key in _CREATED_AT_KEYS:
        value = record.get(key)
        if value is None or value == "":
            continue
        try:
            if isinstance(value, str) and value.strip().isdigit():
                value = int(value.strip())
            parsed = parse_epoch_timestamp(value)
            if isinstance(parsed, str):
                parsed = datetime.fromisoformat(parsed.replace("Z", "+00:00"))
        except (TypeError, ValueError, OverflowError, OSError):
            continue
        if isinstance(parsed, datetime):
            return int(parsed.timestamp() * 1000)
    return None


def is_static_id(record_id: str, settings: ReconcileSettings) -> bool:
    """Short hand-made ids and dev/owner seed ids are always locally authoritative."""
    if len(record_id) < settings.short_id_length:
        return True
    return record_id.startswith(tuple(settings.static_id_prefixes))


def is_recent_restore(restore_ts_ms: int | None, now_ms: int, window_s: float) -> bool:
    if not restore_ts_ms:
        return False
    return (now_ms - restore_ts_ms) < window_s * 1000


def classify_local_only(
    record: Mapping[str, Any],
    *,
    table: str,
    pending_delete_ids: Collection[str],
    now_ms: int,
    recent_restore: bool,
    settings: ReconcileSettings,
) -> LocalOnlyVerdict:
    """Decide what to do with a row the remote snapshot does not contain."""
    record_id = str(record.get("id", ""))
    if record_id in pending_delete_ids:
        return LocalOnlyVerdict.PENDING_DELETE

    created = created_at_ms(record)
    if created is None:
        created = timestamp_from_id(record_id)

    if created is not None:
        if now_ms - created < settings.recency_window_s * 1000:
            return LocalOnlyVerdict.NEW_LOCAL
    elif is_static_id(record_id, settings):
        return LocalOnlyVerdict.STATIC_ID

    if recent_restore:
        return LocalOnlyVerdict.RESTORED
    if table in settings.always_keep_tables:
        return LocalOnlyVerdict.ALWAYS_KEEP
    return LocalOnlyVerdict.STALE
