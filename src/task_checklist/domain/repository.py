# src/task_checklist/domain/repository.py

from __future__ import annotations

"""
Task repository: the only component callers use.

Translates domain operations into store operations and keeps the invariants the
raw store does not know about:
- "complete" is a move: the task and its subtasks leave the live set in the same
  transaction that creates the history entry and its subtask snapshots
- "restore" is the mirror move with fresh identities and completed reset to False
- subtask operations verify that the subtask belongs to the given task

Every compound operation runs inside one store transaction, so callers never see
a partially moved task. Errors from the store are never swallowed on write paths.
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.ports import RecordStore
from ..errors import NotFoundError, ValidationError
from ..storage.models import (
    HistoryEntry,
    HistoryRecord,
    HistorySubtask,
    RecordKind,
    Subtask,
    Task,
    TaskRecord,
    ensure_aware,
    utc_now,
)
from .ids import IdAllocator

logger = logging.getLogger(__name__)

# Import helpers: a record carrying this id gets a freshly allocated one.
UNASSIGNED_ID = 0


def parse_due_date(value: Any) -> datetime:
    """Accept a datetime or ISO-8601 text ("2030-01-01T10:00"); naive means local time."""
    if value is None:
        raise ValidationError("due date is required")
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValidationError("due date is required")
        try:
            return ensure_aware(datetime.fromisoformat(raw))
        except ValueError as e:
            raise ValidationError(f"unparsable due date: {value!r}") from e
    raise ValidationError(f"unsupported due date type: {type(value).__name__}")


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    text = value.strip()
    if not text:
        raise ValidationError(f"{field} must not be empty")
    return text


def _clean_note(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("note must be text")
    return value.strip()


class TaskRepository:
    def __init__(
            self,
            store: RecordStore,
            *,
            clock: Callable[[], datetime] | None = None,
            ids: IdAllocator | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or utc_now
        self._ids = ids or IdAllocator()
        self._ids.observe(store.max_id())

    @property
    def store(self) -> RecordStore:
        return self._store

    # ---- low-level helpers ----

    def _require_task(self, task_id: int) -> TaskRecord:
        record = self._store.get(RecordKind.TASK, task_id)
        if record is None:
            raise NotFoundError("task", task_id)
        return record  # type: ignore[return-value]

    def _require_subtask(self, task_id: int, subtask_id: int) -> Subtask:
        self._require_task(task_id)
        subtask = self._store.get(RecordKind.SUBTASK, subtask_id)
        if subtask is None or subtask.task_id != task_id:  # type: ignore[union-attr]
            raise NotFoundError("subtask", subtask_id, f"subtask {subtask_id} not found in task {task_id}")
        return subtask  # type: ignore[return-value]

    def _require_history(self, history_id: int) -> HistoryRecord:
        record = self._store.get(RecordKind.HISTORY, history_id)
        if record is None:
            raise NotFoundError("history", history_id)
        return record  # type: ignore[return-value]

    def _free_id(self, kind: RecordKind, wanted: int) -> int:
        if wanted > UNASSIGNED_ID and self._store.get(kind, wanted) is None:
            self._ids.observe(wanted)
            return wanted
        return self._ids.next_id()

    @staticmethod
    def _build_task(record: TaskRecord, subtasks: Iterable[Subtask]) -> Task:
        return Task(
            id=record.id,
            title=record.title,
            due_at=record.due_at,
            note=record.note,
            subtasks=tuple(sorted(subtasks, key=lambda st: st.id)),
            created_at=record.created_at,
        )

    @staticmethod
    def _build_history(record: HistoryRecord, subtasks: Iterable[HistorySubtask]) -> HistoryEntry:
        return HistoryEntry(
            id=record.id,
            title=record.title,
            due_at=record.due_at,
            note=record.note,
            completed_at=record.completed_at,
            subtasks=tuple(sorted(subtasks, key=lambda st: st.id)),
        )

    def _load_task(self, record: TaskRecord) -> Task:
        return self._build_task(record, self._store.list(RecordKind.SUBTASK, parent_id=record.id))  # type: ignore[arg-type]

    # ---- reads ----

    def get_task(self, task_id: int) -> Task | None:
        record = self._store.get(RecordKind.TASK, task_id)
        return self._load_task(record) if record else None  # type: ignore[arg-type]

    def get_history_entry(self, history_id: int) -> HistoryEntry | None:
        record = self._store.get(RecordKind.HISTORY, history_id)
        if record is None:
            return None
        snaps = self._store.list(RecordKind.HISTORY_SUBTASK, parent_id=history_id)
        return self._build_history(record, snaps)  # type: ignore[arg-type]

    def list_tasks(self) -> list[Task]:
        """Live tasks, soonest due first."""
        by_task: dict[int, list[Subtask]] = defaultdict(list)
        for st in self._store.list(RecordKind.SUBTASK):
            by_task[st.task_id].append(st)  # type: ignore[union-attr]
        tasks = [self._build_task(r, by_task.get(r.id, ())) for r in self._store.list(RecordKind.TASK)]  # type: ignore[arg-type]
        tasks.sort(key=lambda t: (t.due_at, t.id))
        return tasks

    def list_history(self) -> list[HistoryEntry]:
        """Completed tasks, most recently completed first."""
        by_entry: dict[int, list[HistorySubtask]] = defaultdict(list)
        for st in self._store.list(RecordKind.HISTORY_SUBTASK):
            by_entry[st.history_id].append(st)  # type: ignore[union-attr]
        entries = [
            self._build_history(r, by_entry.get(r.id, ()))  # type: ignore[arg-type]
            for r in self._store.list(RecordKind.HISTORY)
        ]
        entries.sort(key=lambda e: (e.completed_at, e.id), reverse=True)
        return entries

    def is_empty(self) -> bool:
        return self._store.is_empty()

    # ---- tasks ----

    def add_task(self, title: str, due_date: datetime | str | None) -> Task:
        record = TaskRecord(
            id=self._ids.next_id(),
            title=_require_text(title, "title"),
            due_at=parse_due_date(due_date),
            note="",
            created_at=self._clock(),
        )
        with self._store.transaction():
            self._store.put(record)
        logger.debug("Task added id=%s due_at=%s", record.id, record.due_at.isoformat())
        return self._build_task(record, ())

    def update_task(
            self,
            task_id: int,
            *,
            title: str | None = None,
            due_date: datetime | str | None = None,
            note: str | None = None,
    ) -> Task:
        record = self._require_task(task_id)

        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = _require_text(title, "title")
        if due_date is not None:
            changes["due_at"] = parse_due_date(due_date)
        if note is not None:
            changes["note"] = _clean_note(note)

        if not changes:
            return self._load_task(record)

        updated = replace(record, **changes)
        with self._store.transaction():
            self._store.put(updated)
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(changes))
        return self._load_task(updated)

    def delete_task(self, task_id: int) -> bool:
        with self._store.transaction():
            deleted = self._store.delete(RecordKind.TASK, task_id)
        logger.debug("Task deleted id=%s deleted=%s", task_id, deleted)
        return deleted

    # ---- subtasks ----

    def add_subtask(self, task_id: int, text: str) -> Subtask:
        self._require_task(task_id)
        subtask = Subtask(
            id=self._ids.next_id(),
            task_id=task_id,
            text=_require_text(text, "subtask text"),
        )
        with self._store.transaction():
            self._store.put(subtask)
        logger.debug("Subtask added id=%s task_id=%s", subtask.id, task_id)
        return subtask

    def toggle_subtask(self, task_id: int, subtask_id: int) -> Subtask:
        subtask = self._require_subtask(task_id, subtask_id)
        updated = replace(subtask, completed=not subtask.completed)
        with self._store.transaction():
            self._store.put(updated)
        logger.debug("Subtask toggled id=%s completed=%s", subtask_id, updated.completed)
        return updated

    def update_subtask_note(self, task_id: int, subtask_id: int, note: str) -> Subtask:
        subtask = self._require_subtask(task_id, subtask_id)
        updated = replace(subtask, note=_clean_note(note))
        with self._store.transaction():
            self._store.put(updated)
        return updated

    def delete_subtask(self, task_id: int, subtask_id: int) -> None:
        self._require_subtask(task_id, subtask_id)
        with self._store.transaction():
            self._store.delete(RecordKind.SUBTASK, subtask_id)
        logger.debug("Subtask deleted id=%s task_id=%s", subtask_id, task_id)

    # ---- history ----

    def complete_task(self, task_id: int) -> HistoryEntry:
        """Move a task and its subtasks into a new history entry stamped now."""
        with self._store.transaction():
            record = self._require_task(task_id)
            subtasks = self._store.list(RecordKind.SUBTASK, parent_id=task_id)

            history_id = record.id
            if self._store.get(RecordKind.HISTORY, history_id) is not None:
                history_id = self._ids.next_id()
                logger.warning("History id %s already taken; completed task stored as %s", record.id, history_id)

            entry = HistoryRecord(
                id=history_id,
                title=record.title,
                due_at=record.due_at,
                note=record.note,
                completed_at=self._clock(),
            )
            self._store.put(entry)

            snaps: list[HistorySubtask] = []
            for st in subtasks:
                snap = HistorySubtask(
                    id=self._free_id(RecordKind.HISTORY_SUBTASK, st.id),
                    history_id=history_id,
                    text=st.text,  # type: ignore[union-attr]
                    note=st.note,  # type: ignore[union-attr]
                    completed=st.completed,  # type: ignore[union-attr]
                )
                self._store.put(snap)
                snaps.append(snap)

            self._store.delete(RecordKind.TASK, task_id)

        logger.info("Task %s completed -> history (%d subtasks)", task_id, len(snaps))
        return self._build_history(entry, snaps)

    def restore_from_history(self, history_id: int) -> Task:
        """Move a history entry back to the live set under a new id, subtasks unchecked."""
        with self._store.transaction():
            entry = self._require_history(history_id)
            snaps = self._store.list(RecordKind.HISTORY_SUBTASK, parent_id=history_id)

            record = TaskRecord(
                id=self._ids.next_id(),
                title=entry.title,
                due_at=entry.due_at,
                note=entry.note,
                created_at=self._clock(),
            )
            self._store.put(record)

            subtasks: list[Subtask] = []
            for snap in snaps:
                st = Subtask(
                    id=self._ids.next_id(),
                    task_id=record.id,
                    text=snap.text,  # type: ignore[union-attr]
                    note=snap.note,  # type: ignore[union-attr]
                    completed=False,
                )
                self._store.put(st)
                subtasks.append(st)

            self._store.delete(RecordKind.HISTORY, history_id)

        logger.info("History entry %s restored as task %s", history_id, record.id)
        return self._build_task(record, subtasks)

    def delete_history_entry(self, history_id: int) -> bool:
        with self._store.transaction():
            deleted = self._store.delete(RecordKind.HISTORY, history_id)
        logger.debug("History entry deleted id=%s deleted=%s", history_id, deleted)
        return deleted

    # ---- bulk import (migration) ----

    def transaction(self) -> AbstractContextManager[None]:
        return self._store.transaction()

    def import_task(self, record: TaskRecord, subtasks: Iterable[Subtask]) -> Task:
        """
        Insert a task with its subtasks, keeping their ids where possible.

        Ids equal to UNASSIGNED_ID or already in use are replaced with fresh ones.
        """
        with self._store.transaction():
            task_id = self._free_id(RecordKind.TASK, record.id)
            if task_id != record.id and record.id > UNASSIGNED_ID:
                logger.warning("Imported task id %s already in use; stored as %s", record.id, task_id)
            stored = replace(record, id=task_id)
            self._store.put(stored)

            kept: list[Subtask] = []
            for st in subtasks:
                sub = replace(st, id=self._free_id(RecordKind.SUBTASK, st.id), task_id=task_id)
                self._store.put(sub)
                kept.append(sub)

        return self._build_task(stored, kept)

    def import_history_entry(self, record: HistoryRecord, subtasks: Iterable[HistorySubtask]) -> HistoryEntry:
        with self._store.transaction():
            history_id = self._free_id(RecordKind.HISTORY, record.id)
            if history_id != record.id and record.id > UNASSIGNED_ID:
                logger.warning("Imported history id %s already in use; stored as %s", record.id, history_id)
            stored = replace(record, id=history_id)
            self._store.put(stored)

            kept: list[HistorySubtask] = []
            for st in subtasks:
                snap = replace(st, id=self._free_id(RecordKind.HISTORY_SUBTASK, st.id), history_id=history_id)
                self._store.put(snap)
                kept.append(snap)

        return self._build_history(stored, kept)

    # ---- durability ----

    def flush(self) -> None:
        self._store.flush_now()

    def close(self) -> None:
        self._store.close()
