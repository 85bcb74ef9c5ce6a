# src/task_checklist/storage/models.py

"""
Persisted record shapes and the read views built from them.

Four record kinds are stored (tasks, subtasks, history entries, history
subtask snapshots). The repository assembles them into `Task` and
`HistoryEntry` views for callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class RecordKind(StrEnum):
    TASK = "task"
    SUBTASK = "subtask"
    HISTORY = "history"
    HISTORY_SUBTASK = "history_subtask"


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are local wall-clock times (what a date picker produces)."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def to_iso(value: datetime) -> str:
    return ensure_aware(value).isoformat()


def from_iso(raw: str) -> datetime:
    return ensure_aware(datetime.fromisoformat(raw))


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class TaskRecord:
    id: int
    title: str
    due_at: datetime
    note: str = ""
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "due_at": to_iso(self.due_at),
            "note": self.note,
            "created_at": to_iso(self.created_at) if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TaskRecord:
        created = d.get("created_at")
        return cls(
            id=int(d["id"]),
            title=str(d["title"]),
            due_at=from_iso(d["due_at"]),
            note=str(d.get("note") or ""),
            created_at=from_iso(created) if created else None,
        )


@dataclass(frozen=True, slots=True)
class Subtask:
    id: int
    task_id: int
    text: str
    note: str = ""
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "text": self.text,
            "note": self.note,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Subtask:
        return cls(
            id=int(d["id"]),
            task_id=int(d["task_id"]),
            text=str(d["text"]),
            note=str(d.get("note") or ""),
            completed=bool(d.get("completed", False)),
        )


@dataclass(frozen=True, slots=True)
class HistoryRecord:
    id: int
    title: str
    due_at: datetime
    note: str
    completed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "due_at": to_iso(self.due_at),
            "note": self.note,
            "completed_at": to_iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> HistoryRecord:
        return cls(
            id=int(d["id"]),
            title=str(d["title"]),
            due_at=from_iso(d["due_at"]),
            note=str(d.get("note") or ""),
            completed_at=from_iso(d["completed_at"]),
        )


@dataclass(frozen=True, slots=True)
class HistorySubtask:
    id: int
    history_id: int
    text: str
    note: str = ""
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "history_id": self.history_id,
            "text": self.text,
            "note": self.note,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> HistorySubtask:
        return cls(
            id=int(d["id"]),
            history_id=int(d["history_id"]),
            text=str(d["text"]),
            note=str(d.get("note") or ""),
            completed=bool(d.get("completed", False)),
        )


Record = TaskRecord | Subtask | HistoryRecord | HistorySubtask

RECORD_TYPES: dict[RecordKind, type] = {
    RecordKind.TASK: TaskRecord,
    RecordKind.SUBTASK: Subtask,
    RecordKind.HISTORY: HistoryRecord,
    RecordKind.HISTORY_SUBTASK: HistorySubtask,
}


def kind_of(record: Record) -> RecordKind:
    for kind, cls in RECORD_TYPES.items():
        if isinstance(record, cls):
            return kind
    raise TypeError(f"Not a storable record: {record!r}")


# ---- read views ----


@dataclass(frozen=True, slots=True)
class Task:
    id: int
    title: str
    due_at: datetime
    note: str = ""
    subtasks: tuple[Subtask, ...] = field(default_factory=tuple)
    created_at: datetime | None = None

    @property
    def completed_count(self) -> int:
        return sum(1 for st in self.subtasks if st.completed)

    @property
    def progress(self) -> int:
        """Percent of completed subtasks, rounded half up (0 without subtasks)."""
        total = len(self.subtasks)
        if total == 0:
            return 0
        return int(self.completed_count * 100 / total + 0.5)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    id: int
    title: str
    due_at: datetime
    note: str
    completed_at: datetime
    subtasks: tuple[HistorySubtask, ...] = field(default_factory=tuple)

    @property
    def completed_count(self) -> int:
        return sum(1 for st in self.subtasks if st.completed)
