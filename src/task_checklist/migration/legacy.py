# src/task_checklist/migration/legacy.py

from __future__ import annotations

"""
Legacy flat layout: two LocalStorage keys, each a JSON array.

  "tasks":   [{"id", "title", "dueDate", "note"?, "subtasks"?: [...]}]
  "history": [{... same as a task ..., "completedDate"}]
  subtask:   {"id", "text", "note"?, "completed"?}

Ids were millisecond timestamps; restored subtasks got fractional ids
(timestamp + random), which are treated as missing.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import StorageError, StorageErrorKind
from ..storage.local_storage import LocalStorage
from ..storage.models import ensure_aware

logger = logging.getLogger(__name__)

LEGACY_TASKS_KEY = "tasks"
LEGACY_HISTORY_KEY = "history"


def _legacy_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, float) and raw.is_integer() and raw > 0:
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _legacy_flag(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    # 0/1 from older exports; strings such as "false" are not trusted.
    return isinstance(raw, int) and raw == 1


def _required(obj: dict[str, Any], key: str, what: str) -> Any:
    value = obj.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"legacy {what} is missing {key!r}")
    return value


def _timestamp(raw: Any, what: str) -> datetime:
    try:
        return ensure_aware(datetime.fromisoformat(str(raw).strip().replace("Z", "+00:00")))
    except ValueError as e:
        raise ValueError(f"legacy {what} has an unparsable date {raw!r}") from e


@dataclass(frozen=True, slots=True)
class LegacySubtask:
    id: int | None
    text: str
    note: str = ""
    completed: bool = False

    @classmethod
    def from_json(cls, obj: Any) -> LegacySubtask:
        if not isinstance(obj, dict):
            raise ValueError("legacy subtask must be an object")
        return cls(
            id=_legacy_id(obj.get("id")),
            text=str(_required(obj, "text", "subtask")),
            note=str(obj.get("note") or ""),
            completed=_legacy_flag(obj.get("completed")),
        )


def _subtasks(obj: dict[str, Any]) -> tuple[LegacySubtask, ...]:
    raw = obj.get("subtasks") or []
    if not isinstance(raw, list):
        raise ValueError("legacy 'subtasks' must be an array")
    return tuple(LegacySubtask.from_json(item) for item in raw)


@dataclass(frozen=True, slots=True)
class LegacyTask:
    id: int | None
    title: str
    due_at: datetime
    note: str = ""
    subtasks: tuple[LegacySubtask, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, obj: Any) -> LegacyTask:
        if not isinstance(obj, dict):
            raise ValueError("legacy task must be an object")
        return cls(
            id=_legacy_id(obj.get("id")),
            title=str(_required(obj, "title", "task")),
            due_at=_timestamp(_required(obj, "dueDate", "task"), "task"),
            note=str(obj.get("note") or ""),
            subtasks=_subtasks(obj),
        )


@dataclass(frozen=True, slots=True)
class LegacyHistoryEntry:
    id: int | None
    title: str
    due_at: datetime
    completed_at: datetime
    note: str = ""
    subtasks: tuple[LegacySubtask, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, obj: Any) -> LegacyHistoryEntry:
        if not isinstance(obj, dict):
            raise ValueError("legacy history entry must be an object")
        return cls(
            id=_legacy_id(obj.get("id")),
            title=str(_required(obj, "title", "history entry")),
            due_at=_timestamp(_required(obj, "dueDate", "history entry"), "history entry"),
            completed_at=_timestamp(_required(obj, "completedDate", "history entry"), "history entry"),
            note=str(obj.get("note") or ""),
            subtasks=_subtasks(obj),
        )


@dataclass(frozen=True, slots=True)
class LegacySnapshot:
    tasks: tuple[LegacyTask, ...]
    history: tuple[LegacyHistoryEntry, ...]


def has_legacy_data(storage: LocalStorage) -> bool:
    return storage.get_item(LEGACY_TASKS_KEY) is not None or storage.get_item(LEGACY_HISTORY_KEY) is not None


def _parse_array(storage: LocalStorage, key: str) -> list[Any]:
    raw = storage.get_item(key)
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise StorageError(StorageErrorKind.CORRUPT, f"legacy key {key!r} is not valid JSON: {e}") from e
    if data is None:
        return []
    if not isinstance(data, list):
        raise StorageError(StorageErrorKind.CORRUPT, f"legacy key {key!r} is not a JSON array")
    return data


def read_legacy(storage: LocalStorage) -> LegacySnapshot:
    """Parse both legacy keys; raises StorageError(CORRUPT) on any malformed record."""
    try:
        tasks = tuple(LegacyTask.from_json(o) for o in _parse_array(storage, LEGACY_TASKS_KEY))
        history = tuple(LegacyHistoryEntry.from_json(o) for o in _parse_array(storage, LEGACY_HISTORY_KEY))
    except ValueError as e:
        raise StorageError(StorageErrorKind.CORRUPT, f"malformed legacy record: {e}") from e
    logger.debug("Legacy layout parsed tasks=%d history=%d", len(tasks), len(history))
    return LegacySnapshot(tasks=tasks, history=history)


def clear_legacy(storage: LocalStorage) -> None:
    storage.remove_item(LEGACY_TASKS_KEY)
    storage.remove_item(LEGACY_HISTORY_KEY)
