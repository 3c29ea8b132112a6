"""boardsync - Async local cache and remote reconciliation for billboard rental data."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("boardsync")
except PackageNotFoundError:
    __version__ = "0+local"
from boardsync.client import SyncClient
from boardsync.config import ReconcileSettings, SyncConfig
from boardsync.exceptions import (
    BoardSyncError,
    RemoteNotConfiguredError,
    RemoteStoreError,
    StorageError,
    StorageQuotaExceededError,
    SyncConfigError,
)
from boardsync.models import (
    BackupDocument,
    DeletedItem,
    IntegrityReport,
    PendingUpsert,
    RestoreResult,
)
from boardsync.queues import DeletionQueue, UpsertOutbox
from boardsync.remote import RemoteStore, RestRemoteStore
from boardsync.state.engine import MergeResult, ReconciliationEngine, merge_collection
from boardsync.state.listeners import ListenerRegistry
from boardsync.state.store import CollectionStore
from boardsync.storage import FileBackend, LocalStorage, MemoryBackend

__all__ = [
    "__version__",
    "BackupDocument",
    "BoardSyncError",
    "CollectionStore",
    "DeletedItem",
    "DeletionQueue",
    "FileBackend",
    "IntegrityReport",
    "ListenerRegistry",
    "LocalStorage",
    "MemoryBackend",
    "MergeResult",
    "PendingUpsert",
    "ReconcileSettings",
    "ReconciliationEngine",
    "RemoteNotConfiguredError",
    "RemoteStore",
    "RemoteStoreError",
    "RestRemoteStore",
    "RestoreResult",
    "StorageError",
    "StorageQuotaExceededError",
    "SyncClient",
    "SyncConfig",
    "SyncConfigError",
    "UpsertOutbox",
    "merge_collection",
]
