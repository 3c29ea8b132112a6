from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from _fakes import NOW_MS, CountingBackend, FakeRemoteStore
from boardsync.queues import DeletionQueue, UpsertOutbox
from boardsync.state.listeners import ListenerRegistry
from boardsync.state.store import CollectionStore
from boardsync.storage import LocalStorage


@pytest.fixture
def fake_remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def backend() -> CountingBackend:
    return CountingBackend()


@pytest.fixture
def storage(backend: CountingBackend) -> LocalStorage:
    return LocalStorage(backend)


@pytest.fixture
def make_store(storage: LocalStorage, fake_remote: FakeRemoteStore) -> Callable[..., CollectionStore]:
    def _make(
        *,
        remote: Any = fake_remote,
        clock: Callable[[], int] = lambda: NOW_MS,
        listeners: ListenerRegistry | None = None,
    ) -> CollectionStore:
        deletions = DeletionQueue(storage, remote, clock=clock)
        outbox = UpsertOutbox(storage, remote, clock=clock)
        return CollectionStore(storage, deletions, outbox, listeners=listeners, clock=clock)

    return _make
