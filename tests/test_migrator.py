# tests/test_migrator.py

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from task_checklist.domain.repository import TaskRepository
from task_checklist.errors import StorageError, StorageErrorKind
from task_checklist.migration import MigrationStatus, migrate_legacy_storage
from task_checklist.migration.legacy import LEGACY_HISTORY_KEY, LEGACY_TASKS_KEY, LegacySubtask, LegacyTask
from task_checklist.storage.local_storage import LocalStorage

LEGACY_TASKS = [
    {
        "id": 1700000000001,
        "title": "Buy milk",
        "dueDate": "2030-01-01T10:00:00Z",
        "note": "organic",
        "subtasks": [
            {"id": 1700000000002, "text": "2% milk", "completed": True},
            {"id": 1700000000003.25, "text": "oat milk", "note": "barista"},
        ],
    },
    {"id": 1700000000010, "title": "Call mom", "dueDate": "2030-02-01T18:00:00Z"},
]

LEGACY_HISTORY = [
    {
        "id": 1600000000000,
        "title": "File taxes",
        "dueDate": "2029-04-15T00:00:00Z",
        "completedDate": "2029-04-10T09:30:00Z",
        "subtasks": [{"id": 1600000000001, "text": "forms", "completed": True}],
    }
]


def _seed(storage: LocalStorage) -> None:
    storage.set_item(LEGACY_TASKS_KEY, json.dumps(LEGACY_TASKS))
    storage.set_item(LEGACY_HISTORY_KEY, json.dumps(LEGACY_HISTORY))


def test_no_legacy_data_is_a_noop(local_storage: LocalStorage, repository: TaskRepository) -> None:
    result = migrate_legacy_storage(local_storage, repository)
    assert result.status is MigrationStatus.NO_LEGACY_DATA
    assert result.ok
    assert repository.is_empty()


def test_migration_preserves_ids_and_timestamps(local_storage: LocalStorage, repository: TaskRepository) -> None:
    _seed(local_storage)

    result = migrate_legacy_storage(local_storage, repository)

    assert result.status is MigrationStatus.MIGRATED
    assert (result.tasks, result.subtasks, result.history_entries, result.history_subtasks) == (2, 2, 1, 1)

    tasks = {t.id: t for t in repository.list_tasks()}
    assert set(tasks) == {1700000000001, 1700000000010}
    milk = tasks[1700000000001]
    assert milk.note == "organic"
    assert milk.due_at == datetime(2030, 1, 1, 10, 0, tzinfo=UTC)
    assert milk.subtasks[0].id == 1700000000002
    assert milk.subtasks[0].completed is True
    # Fractional legacy id -> fresh id, data kept.
    assert milk.subtasks[1].id != 1700000000003
    assert (milk.subtasks[1].text, milk.subtasks[1].note) == ("oat milk", "barista")

    (entry,) = repository.list_history()
    assert entry.id == 1600000000000
    assert entry.completed_at == datetime(2029, 4, 10, 9, 30, tzinfo=UTC)
    assert [(s.id, s.completed) for s in entry.subtasks] == [(1600000000001, True)]

    assert local_storage.get_item(LEGACY_TASKS_KEY) is None
    assert local_storage.get_item(LEGACY_HISTORY_KEY) is None


def test_second_run_does_not_duplicate(local_storage: LocalStorage, repository: TaskRepository) -> None:
    _seed(local_storage)
    migrate_legacy_storage(local_storage, repository)
    counts = (len(repository.list_tasks()), len(repository.list_history()))

    # Legacy keys reappear (e.g. an interrupted earlier run); the populated target wins.
    _seed(local_storage)
    result = migrate_legacy_storage(local_storage, repository)

    assert result.status is MigrationStatus.SKIPPED_TARGET_NOT_EMPTY
    assert (len(repository.list_tasks()), len(repository.list_history())) == counts
    assert local_storage.get_item(LEGACY_TASKS_KEY) is not None


def test_malformed_legacy_data_fails_without_writing(local_storage: LocalStorage, repository: TaskRepository) -> None:
    local_storage.set_item(LEGACY_TASKS_KEY, json.dumps([{"id": 1, "title": "no due date"}]))

    result = migrate_legacy_storage(local_storage, repository)

    assert result.status is MigrationStatus.FAILED
    assert not result.ok
    assert result.error
    assert repository.is_empty()
    assert local_storage.get_item(LEGACY_TASKS_KEY) is not None


def test_failing_import_rolls_back_and_keeps_legacy_keys(
    local_storage: LocalStorage,
    repository: TaskRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _seed(local_storage)

    def broken(*args, **kwargs):
        raise StorageError(StorageErrorKind.UNAVAILABLE, "medium unavailable")

    monkeypatch.setattr(repository, "import_history_entry", broken)

    result = migrate_legacy_storage(local_storage, repository)

    assert result.status is MigrationStatus.FAILED
    # Tasks were imported first, then rolled back with the rest.
    assert repository.is_empty()
    assert local_storage.get_item(LEGACY_TASKS_KEY) is not None
    assert local_storage.get_item(LEGACY_HISTORY_KEY) is not None


def test_legacy_task_requires_fields() -> None:
    with pytest.raises(ValueError):
        LegacyTask.from_json({"id": 1, "dueDate": "2030-01-01"})
    with pytest.raises(ValueError):
        LegacyTask.from_json("not an object")


def test_failed_flush_removes_imported_records(
    local_storage: LocalStorage,
    repository: TaskRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _seed(local_storage)

    def disk_full() -> None:
        raise StorageError(StorageErrorKind.QUOTA_EXCEEDED, "disk full")

    monkeypatch.setattr(repository, "flush", disk_full)

    result = migrate_legacy_storage(local_storage, repository)

    assert result.status is MigrationStatus.FAILED
    assert repository.is_empty()
    assert repository.list_tasks() == []
    assert repository.list_history() == []
    assert local_storage.get_item(LEGACY_TASKS_KEY) is not None
    assert local_storage.get_item(LEGACY_HISTORY_KEY) is not None

    # Next start: storage works again and the migration runs from scratch.
    monkeypatch.undo()
    retry = migrate_legacy_storage(local_storage, repository)
    assert retry.status is MigrationStatus.MIGRATED
    assert {t.id for t in repository.list_tasks()} == {1700000000001, 1700000000010}


def test_legacy_completed_flag_only_trusts_booleans() -> None:
    flags = [True, False, 1, 0, "false", "true", None, 2]
    parsed = [LegacySubtask.from_json({"text": "s", "completed": raw}).completed for raw in flags]
    assert parsed == [True, False, True, False, False, False, False, False]
