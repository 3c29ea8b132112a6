"""Typed documents used by boardsync.

Entity records themselves stay plain ``dict`` objects: their shape belongs
to the application, not to the sync layer.
"""

from boardsync.models._base import SyncBaseModel
from boardsync.models.backup import BackupData, BackupDocument, BackupStats, RestoreResult
from boardsync.models.queue import DeletedItem, PendingUpsert
from boardsync.models.reports import CollectionCount, IntegrityReport

__all__ = [
    "BackupData",
    "BackupDocument",
    "BackupStats",
    "CollectionCount",
    "DeletedItem",
    "IntegrityReport",
    "PendingUpsert",
    "RestoreResult",
    "SyncBaseModel",
]
