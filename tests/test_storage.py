from __future__ import annotations

import pytest

from boardsync.exceptions import StorageError, StorageQuotaExceededError
from boardsync.storage import FileBackend, LocalStorage, MemoryBackend


class QuotaStubBackend(MemoryBackend):
    """Rejects writes while the designated cache key is still present."""

    def __init__(self, *, cache_key: str = "db_logs", always_fail: bool = False) -> None:
        super().__init__()
        self.cache_key = cache_key
        self.always_fail = always_fail
        self.attempts: list[str] = []

    def set_item(self, key: str, value: str) -> None:
        self.attempts.append(key)
        if self.always_fail or (key != self.cache_key and self.get_item(self.cache_key) is not None):
            raise StorageQuotaExceededError("quota exceeded", key=key)
        super().set_item(key, value)


def test_load_returns_default_when_absent() -> None:
    storage = LocalStorage(MemoryBackend())
    assert storage.load("db_billboards", []) == []
    assert storage.load("db_company_profile", None) is None


def test_corrupt_entry_fails_closed(caplog: pytest.LogCaptureFixture) -> None:
    backend = MemoryBackend()
    backend.set_item("db_clients", "{not json")
    storage = LocalStorage(backend)

    assert storage.load("db_clients", ["fallback"]) == ["fallback"]
    assert "Corrupt entry" in caplog.text


def test_saved_value_is_readable_back() -> None:
    storage = LocalStorage(MemoryBackend())
    rows = [{"id": "a", "name": "Harare North", "sides": ["A", "B"]}]

    assert storage.save("db_billboards", rows) is True
    assert storage.load("db_billboards", []) == rows


def test_quota_exhaustion_evicts_cache_key_and_retries() -> None:
    backend = QuotaStubBackend()
    MemoryBackend.set_item(backend, "db_logs", '[{"id": "log-1"}]')
    storage = LocalStorage(backend)

    assert storage.save("db_billboards", [{"id": "a"}]) is True
    assert backend.get_item("db_logs") is None
    assert backend.attempts == ["db_billboards", "db_billboards"]
    assert storage.load("db_billboards", []) == [{"id": "a"}]


def test_quota_exhaustion_after_retry_is_swallowed(caplog: pytest.LogCaptureFixture) -> None:
    backend = QuotaStubBackend(always_fail=True)
    storage = LocalStorage(backend)

    assert storage.save("db_billboards", [{"id": "a"}]) is False
    assert "Critical storage error" in caplog.text
    assert storage.load("db_billboards", None) is None


def test_memory_backend_quota_counts_utf16_bytes() -> None:
    backend = MemoryBackend(quota_bytes=1000)
    backend.set_item("db_logs", "x" * 400)
    with pytest.raises(StorageQuotaExceededError):
        backend.set_item("db_billboards", "y" * 200)

    storage = LocalStorage(backend)
    assert storage.save("db_billboards", ["y" * 150]) is True
    assert backend.get_item("db_logs") is None


def test_evictable_key_itself_is_not_evicted_while_saving_it() -> None:
    backend = MemoryBackend(quota_bytes=100)
    storage = LocalStorage(backend)
    assert storage.save("db_logs", ["x" * 200]) is False
    assert backend.get_item("db_logs") is None


def test_usage_counts_only_db_keys() -> None:
    backend = MemoryBackend()
    backend.set_item("db_tasks", "x" * 512)
    backend.set_item("sb_url", "y" * 4096)

    assert LocalStorage(backend).usage_kib() == 1.0


def test_file_backend_round_trip_and_remove(tmp_path) -> None:
    backend = FileBackend(tmp_path / "cache")
    backend.set_item("db_contracts", "[]")
    assert backend.get_item("db_contracts") == "[]"
    assert list(backend.keys()) == ["db_contracts"]

    backend.remove_item("db_contracts")
    assert backend.get_item("db_contracts") is None
    assert backend.version("db_contracts") is None


def test_file_backend_enforces_quota(tmp_path) -> None:
    backend = FileBackend(tmp_path, quota_bytes=64)
    with pytest.raises(StorageError):
        backend.set_item("db_billboards", "z" * 100)


def test_external_writes_are_detected_across_adapters(tmp_path) -> None:
    first = LocalStorage(FileBackend(tmp_path))
    second = LocalStorage(FileBackend(tmp_path))

    first.save("db_tasks", [])
    assert second.load("db_tasks", None) == []
    assert second.poll_external_changes(["db_tasks"]) == []

    first.save("db_tasks", [{"id": "task-1", "title": "Replace flex"}])
    assert second.poll_external_changes(["db_tasks"]) == ["db_tasks"]
    assert second.poll_external_changes(["db_tasks"]) == []
    # Our own writes are not reported back to us.
    assert first.poll_external_changes(["db_tasks"]) == []
