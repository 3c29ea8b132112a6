"""Client configuration for boardsync."""

from __future__ import annotations

import dataclasses
import logging
import os
from typing import Any

from boardsync.exceptions import SyncConfigError

_logger = logging.getLogger(__name__)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ReconcileSettings:
    """Knobs for classifying local-only rows during reconciliation.

    These correspond to the heuristics that decide whether a row missing
    from the remote snapshot was created locally (keep and push) or deleted
    by another session (drop).
    """

    recency_window_s: float = 600.0
    restore_window_s: float = 300.0
    short_id_length: int = 10
    static_id_prefixes: tuple[str, ...] = ("dev-", "owner-")
    always_keep_tables: frozenset[str] = frozenset({"users"})


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Remote store project URL (e.g. ``"https://xyz.supabase.co"``).
        Empty disables all remote calls.
    api_key : str
        Project API key sent as ``apikey`` and bearer token.
    storage_dir : str or None
        Directory for the file-backed local cache. ``None`` keeps the
        cache in memory only.
    storage_quota_bytes : int or None
        Maximum total size of the local cache. ``None`` means unbounded.
    sync_interval : float
        Seconds between periodic reconciliation passes.
    auto_backup_interval : float
        Seconds between automatic local backup snapshots. ``0`` disables.
    api_trace_enabled : bool
        Log every remote request/response at DEBUG (credentials redacted).
    reconcile : ReconcileSettings
        Local-only row classification knobs.
    """

    base_url: str = ""
    api_key: str = ""
    storage_dir: str | None = None
    storage_quota_bytes: int | None = None
    sync_interval: float = 5.0
    auto_backup_interval: float = 5 * 60.0
    api_trace_enabled: bool = False
    reconcile: ReconcileSettings = dataclasses.field(default_factory=ReconcileSettings)

    @property
    def remote_enabled(self) -> bool:
        return bool(self.base_url and self.api_key)

    def validate(self) -> None:
        """Check the fields needed to talk to the remote store.

        Raises
        ------
        SyncConfigError
            If the URL or key is missing or malformed.
        """
        if not self.base_url:
            raise SyncConfigError("base_url is required for remote sync (set BOARDSYNC_URL)")
        if not self.base_url.startswith(("http://", "https://")):
            raise SyncConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        if not self.api_key:
            raise SyncConfigError("api_key is required for remote sync (set BOARDSYNC_API_KEY)")
        if not self.api_key.startswith("eyJ"):
            # Hosted anon keys are JWTs; anything else is usually a pasted secret of the wrong kind.
            _logger.warning("API key does not look like a JWT (expected it to start with 'eyJ')")
        if self.sync_interval <= 0:
            raise SyncConfigError("sync_interval must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``BOARDSYNC_URL``, ``BOARDSYNC_API_KEY`` and the optional
        ``BOARDSYNC_*`` tuning variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.
        """
        env = os.environ

        reconcile_kwargs: dict[str, Any] = {}
        window_env = env.get("BOARDSYNC_RECENCY_WINDOW")
        if window_env is not None:
            reconcile_kwargs["recency_window_s"] = float(window_env)
        restore_env = env.get("BOARDSYNC_RESTORE_WINDOW")
        if restore_env is not None:
            reconcile_kwargs["restore_window_s"] = float(restore_env)

        reconcile_overrides = overrides.pop("reconcile", None)
        if isinstance(reconcile_overrides, dict):
            reconcile_kwargs.update(reconcile_overrides)
        elif isinstance(reconcile_overrides, ReconcileSettings):
            reconcile_kwargs = dataclasses.asdict(reconcile_overrides)

        reconcile = ReconcileSettings(**reconcile_kwargs) if reconcile_kwargs else ReconcileSettings()

        _ENV_CONFIG_MAP = {
            "BOARDSYNC_URL": "base_url",
            "BOARDSYNC_API_KEY": "api_key",
            "BOARDSYNC_STORAGE_DIR": "storage_dir",
        }
        config_kwargs: dict[str, Any] = {"reconcile": reconcile}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields, handled separately
        quota_env = env.get("BOARDSYNC_STORAGE_QUOTA")
        if quota_env is not None and "storage_quota_bytes" not in overrides:
            config_kwargs["storage_quota_bytes"] = int(quota_env)

        interval_env = env.get("BOARDSYNC_SYNC_INTERVAL")
        if interval_env is not None and "sync_interval" not in overrides:
            config_kwargs["sync_interval"] = float(interval_env)

        backup_env = env.get("BOARDSYNC_AUTO_BACKUP_INTERVAL")
        if backup_env is not None and "auto_backup_interval" not in overrides:
            config_kwargs["auto_backup_interval"] = float(backup_env)

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(env.get("BOARDSYNC_TRACE_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
