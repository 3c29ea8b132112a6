"""Custom exception hierarchy for boardsync."""

from __future__ import annotations


class BoardSyncError(Exception):
    """Base exception for all boardsync errors."""


class SyncConfigError(BoardSyncError):
    """Invalid or missing configuration."""


class StorageError(BoardSyncError):
    """Local durable storage failure."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StorageQuotaExceededError(StorageError):
    """A write would exceed the storage backend's quota."""


class RemoteStoreError(BoardSyncError):
    """Remote store call failed (network, non-2xx, invalid JSON).

    Callers treat every instance as "remote unavailable for this attempt";
    transient and permanent failures are not distinguished.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        table: str = "",
    ) -> None:
        self.status_code = status_code
        self.table = table
        super().__init__(message)


class RemoteNotConfiguredError(RemoteStoreError):
    """No remote store is available (missing URL or API key)."""
