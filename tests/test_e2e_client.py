from __future__ import annotations

import asyncio
import json

import pytest

from _fakes import NOW_MS, FakeRemoteStore
from boardsync.client import SyncClient
from boardsync.config import SyncConfig
from boardsync.exceptions import BoardSyncError
from boardsync.storage import LocalStorage, MemoryBackend


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(sync_interval=0.01, auto_backup_interval=0.01)


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore(
        tables={
            "billboards": [{"id": "billboard-a", "name": "Samora Machel Ave"}],
            "clients": [{"id": "client-a", "companyName": "Delta"}],
            "audit_logs": [],
        }
    )


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_client_happy_path(config: SyncConfig, remote: FakeRemoteStore) -> None:
    notifications: list[int] = []

    async with SyncClient(config, remote=remote, clock=lambda: NOW_MS) as client:
        client.subscribe(lambda: notifications.append(1))

        assert await client.pull_all()
        assert client.get("billboards") == [{"id": "billboard-a", "name": "Samora Machel Ave"}]

        new_id = "billboard-1700000000000"
        client.add("billboards", {"id": new_id, "name": "Borrowdale Rd"})
        assert client.delete("clients", "client-a")

        # The remote snapshot has not seen the new row yet; it must survive.
        remote.tables["billboards"] = [{"id": "billboard-a", "name": "Samora Machel Ave (lit)"}]
        assert await client.trigger_full_sync()

        ids = [row["id"] for row in client.get("billboards")]
        assert ids == ["billboard-a", new_id]
        assert client.get("clients") == []
        assert remote.tables["clients"] == []

        report = await client.verify_integrity()
        assert report is not None
        assert report.collections["billboards"].in_sync
        assert report.mismatched == []

    assert notifications
    assert any(row["id"] == new_id for row in remote.tables["billboards"])


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_background_loop_syncs_and_snapshots(config: SyncConfig, remote: FakeRemoteStore) -> None:
    storage = LocalStorage(MemoryBackend())

    async with SyncClient(config, remote=remote, storage=storage) as client:
        client.start()
        assert client.is_running
        client.on_focus()
        await asyncio.sleep(0.1)
        await client.stop()
        assert not client.is_running

        assert client.get("billboards") == remote.tables["billboards"]

    assert storage.load("db_auto_backup_data", None) is not None
    assert any(name == "select_all" for name, _, _ in remote.calls)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_backup_and_restore_round_trip(config: SyncConfig, remote: FakeRemoteStore) -> None:
    async with SyncClient(config, remote=remote, clock=lambda: NOW_MS) as client:
        await client.pull_all()
        text = client.create_backup()

        client.delete("billboards", "billboard-a")
        assert client.get("billboards") == []

        result = await client.restore_backup(text)
        assert result.success
        assert result.count == 2
        assert client.get("billboards") == [{"id": "billboard-a", "name": "Samora Machel Ave"}]
        assert json.loads(text)["stats"]["billboards"] == 1


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_local_only_mode() -> None:
    async with SyncClient(SyncConfig()) as client:
        assert not await client.pull_all()
        assert not await client.trigger_full_sync()
        assert await client.verify_integrity() is None

        client.add("tasks", {"id": "task-1", "title": "Repaint panel"})
        assert client.get("tasks")[0]["title"] == "Repaint panel"
        assert client.storage_usage_kib() > 0


def test_store_requires_context_manager() -> None:
    client = SyncClient(SyncConfig())
    with pytest.raises(BoardSyncError):
        _ = client.store
