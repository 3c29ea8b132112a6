"""Entries of the durable remote-write queues."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from boardsync.models._base import SyncBaseModel


class DeletedItem(SyncBaseModel):
    """A locally requested deletion not yet confirmed by the remote store."""

    table: str
    id: str
    timestamp: int = Field(..., description="Epoch milliseconds when the deletion was requested")

    @field_validator("table", "id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("table and id must be non-empty")
        return value

    @property
    def key(self) -> tuple[str, str]:
        return (self.table, self.id)


class PendingUpsert(SyncBaseModel):
    """A record whose remote upsert failed and is waiting for a retry."""

    table: str
    record: dict[str, Any]
    timestamp: int = Field(..., description="Epoch milliseconds of the latest failed attempt")

    @property
    def record_id(self) -> str:
        return str(self.record.get("id", ""))

    @property
    def key(self) -> tuple[str, str]:
        return (self.table, self.record_id)
