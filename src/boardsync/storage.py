"""Durable local key-value storage for cached collections.

The adapter mirrors a browser ``localStorage``: string values under string
keys, a finite quota, and change detection for writes made by another
process sharing the same backend (the analog of the cross-tab ``storage``
event).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol, TypeVar
from urllib.parse import quote, unquote

from boardsync._constants import EVICTABLE_KEYS
from boardsync.exceptions import StorageError, StorageQuotaExceededError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_FILE_SUFFIX = ".json"


class KeyValueBackend(Protocol):
    """Structural interface of a synchronous string key-value store.

    ``version`` returns an opaque token that changes whenever the stored
    value changes (from any process), or ``None`` if the key is absent.
    """

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...

    def version(self, key: str) -> object | None: ...


def _entry_size(key: str, value: str) -> int:
    # Browsers account two bytes per UTF-16 code unit for key and value.
    return (len(key) + len(value)) * 2


class MemoryBackend:
    """In-process backend with an optional quota."""

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._quota_bytes = quota_bytes
        self._items: dict[str, str] = {}
        self._versions: dict[str, int] = {}
        self._counter = 0

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            used = sum(_entry_size(k, v) for k, v in self._items.items() if k != key)
            if used + _entry_size(key, value) > self._quota_bytes:
                raise StorageQuotaExceededError(f"quota of {self._quota_bytes} bytes exceeded writing {key}", key=key)
        self._items[key] = value
        self._counter += 1
        self._versions[key] = self._counter

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)
        self._versions.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))

    def version(self, key: str) -> object | None:
        return self._versions.get(key)


class FileBackend:
    """One file per key under *root*, replaced atomically on write.

    Several processes pointing at the same directory see each other's writes
    through :meth:`version` (file ``mtime_ns`` and size).
    """

    def __init__(self, root: str | os.PathLike[str], *, quota_bytes: int | None = None) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        return self._root / f"{quote(key, safe='')}{_FILE_SUFFIX}"

    def get_item(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"could not read {key}: {exc}", key=key) from exc

    def _used_bytes(self, exclude: str) -> int:
        used = 0
        for key in self.keys():
            if key == exclude:
                continue
            value = self.get_item(key)
            if value is not None:
                used += _entry_size(key, value)
        return used

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None and self._used_bytes(key) + _entry_size(key, value) > self._quota_bytes:
            raise StorageQuotaExceededError(f"quota of {self._quota_bytes} bytes exceeded writing {key}", key=key)
        target = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=_FILE_SUFFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"could not write {key}: {exc}", key=key) from exc

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> Iterator[str]:
        for path in sorted(self._root.glob(f"*{_FILE_SUFFIX}")):
            if path.name.startswith(".tmp-"):
                continue
            yield unquote(path.name[: -len(_FILE_SUFFIX)])

    def version(self, key: str) -> object | None:
        try:
            stat = self._path(key).stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)


class LocalStorage:
    """JSON load/save on top of a :class:`KeyValueBackend`.

    Nothing here raises to the caller on ordinary failure: corrupt entries
    load as the caller's default, and writes that still fail after evicting
    the recreatable keys are dropped with an ERROR log.
    """

    def __init__(
        self,
        backend: KeyValueBackend | None = None,
        *,
        evictable_keys: Iterable[str] = EVICTABLE_KEYS,
    ) -> None:
        self._backend: KeyValueBackend = backend if backend is not None else MemoryBackend()
        self._evictable_keys = tuple(evictable_keys)
        self._seen_versions: dict[str, object | None] = {}

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def _remember(self, key: str) -> None:
        self._seen_versions[key] = self._backend.version(key)

    def load(self, key: str, default: T) -> Any | T:
        """Return the stored value for *key*, or *default* if absent or corrupt."""
        try:
            stored = self._backend.get_item(key)
        except StorageError:
            _logger.warning("Error loading %s", key, exc_info=True)
            return default
        self._remember(key)
        if stored is None:
            return default
        try:
            return json.loads(stored)
        except (json.JSONDecodeError, ValueError):
            _logger.warning("Corrupt entry under %s; using default", key)
            return default

    def save(self, key: str, value: Any) -> bool:
        """Serialize and persist *value*. Returns whether the write landed."""
        serialized = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        try:
            self._backend.set_item(key, serialized)
        except StorageQuotaExceededError:
            _logger.warning("Storage full writing %s; evicting %s and retrying", key, ", ".join(self._evictable_keys))
            for evictable in self._evictable_keys:
                if evictable != key:
                    self._backend.remove_item(evictable)
                    self._seen_versions.pop(evictable, None)
            try:
                self._backend.set_item(key, serialized)
            except StorageError:
                _logger.error("Critical storage error: write to %s dropped after eviction", key, exc_info=True)
                return False
        except StorageError:
            _logger.error("Error saving %s", key, exc_info=True)
            return False
        self._remember(key)
        return True

    def remove(self, key: str) -> None:
        self._backend.remove_item(key)
        self._seen_versions.pop(key, None)

    def read_raw(self, key: str) -> str | None:
        try:
            return self._backend.get_item(key)
        except StorageError:
            _logger.warning("Error reading %s", key, exc_info=True)
            return None

    def usage_kib(self, prefix: str = "db_") -> float:
        """Approximate size of the cached ``db_`` entries in KiB."""
        total = 0
        for key in self._backend.keys():
            if not key.startswith(prefix):
                continue
            value = self.read_raw(key)
            if value is not None:
                total += len(value) * 2
        return round(total / 1024, 2)

    def poll_external_changes(self, keys: Iterable[str]) -> list[str]:
        """Return which of *keys* were changed by someone else since we last touched them."""
        changed: list[str] = []
        for key in keys:
            current = self._backend.version(key)
            if key not in self._seen_versions:
                self._seen_versions[key] = current
                continue
            if current != self._seen_versions[key]:
                self._seen_versions[key] = current
                changed.append(key)
        return changed
