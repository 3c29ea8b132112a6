"""Backup document models.

The backup format is a JSON object with metadata, per-collection counts
and the full data payload. Collections missing from ``data`` are left
untouched on restore.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from boardsync.models._base import EpochTimestamp, SyncBaseModel


class BackupStats(SyncBaseModel):
    billboards: int = 0
    clients: int = 0
    contracts: int = 0
    invoices: int = 0
    expenses: int = 0
    users: int = 0
    tasks: int = 0
    maintenance_logs: int = 0
    outsourced_billboards: int = 0
    printing_jobs: int = 0
    audit_logs: int = 0
    total_records: int = 0


class BackupData(SyncBaseModel):
    """Collections and settings captured by a backup.

    Field names are the snake_case collection names; on disk they use the
    camelCase aliases (``maintenanceLogs``, ``companyProfile``...).
    """

    billboards: list[dict[str, Any]] | None = None
    clients: list[dict[str, Any]] | None = None
    contracts: list[dict[str, Any]] | None = None
    invoices: list[dict[str, Any]] | None = None
    expenses: list[dict[str, Any]] | None = None
    users: list[dict[str, Any]] | None = None
    tasks: list[dict[str, Any]] | None = None
    maintenance_logs: list[dict[str, Any]] | None = None
    outsourced_billboards: list[dict[str, Any]] | None = None
    printing_jobs: list[dict[str, Any]] | None = None
    audit_logs: list[dict[str, Any]] | None = None
    company_profile: dict[str, Any] | None = None
    company_logo: str | None = None

    @field_validator(
        "billboards",
        "clients",
        "contracts",
        "invoices",
        "expenses",
        "users",
        "tasks",
        "maintenance_logs",
        "outsourced_billboards",
        "printing_jobs",
        "audit_logs",
        mode="before",
    )
    @classmethod
    def _lists_only(cls, value: Any) -> Any:
        # Anything that is not a list of objects is skipped, not rejected.
        if not isinstance(value, list):
            return None
        return [row for row in value if isinstance(row, dict)]

    @field_validator("company_profile", mode="before")
    @classmethod
    def _dict_only(cls, value: Any) -> Any:
        return value if isinstance(value, dict) and value else None

    @field_validator("company_logo", mode="before")
    @classmethod
    def _str_only(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value else None

    def collection(self, table: str) -> list[dict[str, Any]] | None:
        value = getattr(self, table, None)
        return value if isinstance(value, list) else None


class BackupDocument(SyncBaseModel):
    version: str
    app_name: str = ""
    timestamp: EpochTimestamp = None
    created_at: str = ""
    stats: BackupStats = Field(default_factory=BackupStats)
    data: BackupData


class RestoreResult(SyncBaseModel):
    success: bool
    count: int = 0
    restored_at: datetime | None = None
