from __future__ import annotations

import logging

import pytest

from boardsync.config import ReconcileSettings, SyncConfig
from boardsync.exceptions import SyncConfigError

_ENV_VARS = (
    "BOARDSYNC_URL",
    "BOARDSYNC_API_KEY",
    "BOARDSYNC_STORAGE_DIR",
    "BOARDSYNC_STORAGE_QUOTA",
    "BOARDSYNC_SYNC_INTERVAL",
    "BOARDSYNC_AUTO_BACKUP_INTERVAL",
    "BOARDSYNC_TRACE_ENABLED",
    "BOARDSYNC_RECENCY_WINDOW",
    "BOARDSYNC_RESTORE_WINDOW",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_disable_remote() -> None:
    config = SyncConfig.from_env()
    assert not config.remote_enabled
    assert config.sync_interval == 5.0
    assert config.reconcile == ReconcileSettings()


def test_env_values_are_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOARDSYNC_URL", "https://project.supabase.co")
    monkeypatch.setenv("BOARDSYNC_API_KEY", "eyJkey")
    monkeypatch.setenv("BOARDSYNC_STORAGE_QUOTA", "5242880")
    monkeypatch.setenv("BOARDSYNC_SYNC_INTERVAL", "2.5")
    monkeypatch.setenv("BOARDSYNC_TRACE_ENABLED", "yes")
    monkeypatch.setenv("BOARDSYNC_RECENCY_WINDOW", "120")

    config = SyncConfig.from_env()

    assert config.remote_enabled
    assert config.storage_quota_bytes == 5_242_880
    assert config.sync_interval == 2.5
    assert config.api_trace_enabled
    assert config.reconcile.recency_window_s == 120.0
    assert config.reconcile.restore_window_s == 300.0


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOARDSYNC_SYNC_INTERVAL", "2.5")

    config = SyncConfig.from_env(sync_interval=30.0, reconcile={"restore_window_s": 60.0})

    assert config.sync_interval == 30.0
    assert config.reconcile.restore_window_s == 60.0


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"api_key": "eyJkey"}, "base_url"),
        ({"base_url": "project.supabase.co", "api_key": "eyJkey"}, "http"),
        ({"base_url": "https://project.supabase.co"}, "api_key"),
        ({"base_url": "https://project.supabase.co", "api_key": "eyJkey", "sync_interval": 0}, "sync_interval"),
    ],
)
def test_validate_rejects_bad_config(kwargs: dict, message: str) -> None:
    with pytest.raises(SyncConfigError, match=message):
        SyncConfig(**kwargs).validate()


def test_non_jwt_key_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="boardsync.config"):
        SyncConfig(base_url="https://project.supabase.co", api_key="service-secret").validate()
    assert "JWT" in caplog.text
