# src/task_checklist/migration/migrator.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from ..domain.repository import UNASSIGNED_ID, TaskRepository
from ..errors import ChecklistError
from ..storage.local_storage import LocalStorage
from ..storage.models import HistoryRecord, HistorySubtask, Subtask, TaskRecord
from .legacy import LegacySnapshot, clear_legacy, has_legacy_data, read_legacy

logger = logging.getLogger(__name__)


class MigrationStatus(StrEnum):
    NO_LEGACY_DATA = "no_legacy_data"
    SKIPPED_TARGET_NOT_EMPTY = "skipped_target_not_empty"
    MIGRATED = "migrated"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class MigrationResult:
    status: MigrationStatus
    tasks: int = 0
    subtasks: int = 0
    history_entries: int = 0
    history_subtasks: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not MigrationStatus.FAILED


def _import(
    snapshot: LegacySnapshot,
    repository: TaskRepository,
    task_ids: list[int],
    history_ids: list[int],
) -> MigrationResult:
    tasks = subtasks = entries = snaps = 0

    with repository.transaction():
        for lt in snapshot.tasks:
            task = repository.import_task(
                TaskRecord(
                    id=lt.id or UNASSIGNED_ID,
                    title=lt.title,
                    due_at=lt.due_at,
                    note=lt.note,
                ),
                [
                    Subtask(
                        id=ls.id or UNASSIGNED_ID,
                        task_id=UNASSIGNED_ID,
                        text=ls.text,
                        note=ls.note,
                        completed=ls.completed,
                    )
                    for ls in lt.subtasks
                ],
            )
            task_ids.append(task.id)
            tasks += 1
            subtasks += len(task.subtasks)

        for lh in snapshot.history:
            entry = repository.import_history_entry(
                HistoryRecord(
                    id=lh.id or UNASSIGNED_ID,
                    title=lh.title,
                    due_at=lh.due_at,
                    note=lh.note,
                    completed_at=lh.completed_at,
                ),
                [
                    HistorySubtask(
                        id=ls.id or UNASSIGNED_ID,
                        history_id=UNASSIGNED_ID,
                        text=ls.text,
                        note=ls.note,
                        completed=ls.completed,
                    )
                    for ls in lh.subtasks
                ],
            )
            history_ids.append(entry.id)
            entries += 1
            snaps += len(entry.subtasks)

    return MigrationResult(
        status=MigrationStatus.MIGRATED,
        tasks=tasks,
        subtasks=subtasks,
        history_entries=entries,
        history_subtasks=snaps,
    )


def _discard(repository: TaskRepository, task_ids: list[int], history_ids: list[int]) -> None:
    """Drop a half-finished import so the store looks as if the migration never ran."""
    if repository.is_empty():
        return
    try:
        with repository.transaction():
            for task_id in task_ids:
                repository.delete_task(task_id)
            for history_id in history_ids:
                repository.delete_history_entry(history_id)
    except ChecklistError as e:
        # The working set is already back to empty; only the flush of that failed.
        logger.warning("Could not persist removal of the partial import: %s", e)


def migrate_legacy_storage(storage: LocalStorage, repository: TaskRepository) -> MigrationResult:
    """
    One-shot upgrade from the legacy flat layout into the record store.

    Must run before any other repository access. Steps:
    - no legacy keys                -> NO_LEGACY_DATA
    - target store already has data -> SKIPPED_TARGET_NOT_EMPTY (legacy keys kept)
    - import everything in one transaction, keeping the original ids
    - flush the store; only after a successful flush remove the legacy keys

    Never raises: failures are logged and reported as FAILED, with the legacy
    keys left in place so nothing is lost. Records imported before a failed
    flush are removed again, so the next start retries from the legacy keys.
    """
    if not has_legacy_data(storage):
        return MigrationResult(status=MigrationStatus.NO_LEGACY_DATA)

    if not repository.is_empty():
        logger.warning(
            "Legacy task data found but the store already has records; skipping migration "
            "(legacy keys left in %s)",
            storage.path,
        )
        return MigrationResult(status=MigrationStatus.SKIPPED_TARGET_NOT_EMPTY)

    task_ids: list[int] = []
    history_ids: list[int] = []
    try:
        snapshot = read_legacy(storage)
        result = _import(snapshot, repository, task_ids, history_ids)
        repository.flush()
    except Exception as e:
        logger.exception("Legacy migration failed; legacy data kept for the next start")
        _discard(repository, task_ids, history_ids)
        return MigrationResult(status=MigrationStatus.FAILED, error=str(e))

    try:
        clear_legacy(storage)
    except ChecklistError as e:
        # Records are durable; the non-empty store makes the next run skip.
        logger.warning("Migrated, but failed to remove legacy keys: %s", e)

    logger.info(
        "Legacy migration done: tasks=%d subtasks=%d history=%d history_subtasks=%d",
        result.tasks,
        result.subtasks,
        result.history_entries,
        result.history_subtasks,
    )
    return result
