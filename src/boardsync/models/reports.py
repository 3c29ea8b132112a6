"""Diagnostic reports."""

from __future__ import annotations

from pydantic import Field

from boardsync.models._base import SyncBaseModel


class CollectionCount(SyncBaseModel):
    local: int = 0
    remote: int = 0

    @property
    def in_sync(self) -> bool:
        return self.local == self.remote


class IntegrityReport(SyncBaseModel):
    """Local vs remote row counts per collection."""

    collections: dict[str, CollectionCount] = Field(default_factory=dict)

    @property
    def mismatched(self) -> list[str]:
        return [name for name, count in self.collections.items() if not count.in_sync]
