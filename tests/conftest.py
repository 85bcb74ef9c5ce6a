# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from task_checklist.core.state import AppState
from task_checklist.domain.repository import TaskRepository
from task_checklist.notifications.bridge import NotificationBridge
from task_checklist.storage import BlobStore, LocalStorage, SqliteStore

from .fakes import FakeClock, FakeNotificationCapability, ImmediateLoop


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the stores.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment and any local .env.
    """
    return SimpleNamespace(
        app_name="checklist-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        db_path=tmp_path / "tasks.sqlite3",
        local_storage_path=tmp_path / "local_storage.json",
        storage_backend="sqlite",
        local_storage_quota_bytes=5 * 1024 * 1024,
        # Synchronous flushes: every committed write is on disk when the call returns.
        flush_delay_seconds=0.0,
        notifications_enabled=False,
        matrix_homeserver="",
        matrix_user_id="",
        matrix_password="",
        matrix_room_id="",
        matrix_store_path=tmp_path / "matrix_store",
    )


@pytest.fixture()
def local_storage(settings: SimpleNamespace) -> LocalStorage:
    return LocalStorage(settings.local_storage_path, quota_bytes=settings.local_storage_quota_bytes)


@pytest.fixture(params=["sqlite", "blob"])
def store(request, settings: SimpleNamespace, local_storage: LocalStorage) -> Iterator[SqliteStore | BlobStore]:
    """Every store-level property is checked against both backends."""
    if request.param == "sqlite":
        s: SqliteStore | BlobStore = SqliteStore(settings.db_path, flush_delay_seconds=0)
    else:
        s = BlobStore(local_storage, flush_delay_seconds=0)
    yield s
    s.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def repository(store, clock: FakeClock) -> TaskRepository:
    return TaskRepository(store, clock=clock)


@pytest.fixture()
def capability() -> FakeNotificationCapability:
    return FakeNotificationCapability()


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    local_storage: LocalStorage,
    clock: FakeClock,
    capability: FakeNotificationCapability,
) -> Iterator[AppState]:
    """
    AppState wired with deterministic fakes.

    NOTE: the store is a real SqliteStore because its behavior is part of what
    command tests exercise; notifications run synchronously via ImmediateLoop.
    """
    repo = TaskRepository(SqliteStore(settings.db_path, flush_delay_seconds=0), clock=clock)
    st = AppState(
        settings=settings,
        repository=repo,
        local_storage=local_storage,
        notifications=NotificationBridge(capability),
        loop=ImmediateLoop(),  # type: ignore[arg-type]
    )
    yield st
    repo.close()
