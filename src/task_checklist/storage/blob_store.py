# src/task_checklist/storage/blob_store.py

from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import NotFoundError, StorageError, StorageErrorKind
from .base import FlushingStore
from .local_storage import LocalStorage
from .models import (
    RECORD_TYPES,
    HistorySubtask,
    Record,
    RecordKind,
    Subtask,
    kind_of,
)

logger = logging.getLogger(__name__)

DEFAULT_BLOB_KEY = "checklist.records"

_BLOB_VERSION = 1


class BlobStore(FlushingStore):
    """
    Flat serialized store: the whole working set is one JSON document kept
    under a single LocalStorage key.

    Referential rules are enforced here because the blob has no schema:
    - a subtask must point at a live task (history subtask -> history entry)
    - deleting a task / history entry drops its children
    Transactions snapshot the four collections and restore them on failure.
    """

    def __init__(
            self,
            local_storage: LocalStorage,
            *,
            key: str = DEFAULT_BLOB_KEY,
            flush_delay_seconds: float = 0.3,
    ) -> None:
        super().__init__(flush_delay_seconds=flush_delay_seconds, name="blob-flush")
        self._storage = local_storage
        self._key = key
        self._records: dict[RecordKind, dict[int, Any]] = self._load()
        self._snapshot: dict[RecordKind, dict[int, Any]] | None = None
        logger.info(
            "BlobStore ready key=%s tasks=%s history=%s",
            self._key,
            len(self._records[RecordKind.TASK]),
            len(self._records[RecordKind.HISTORY]),
        )

    # ---- low-level helpers ----

    @staticmethod
    def _empty() -> dict[RecordKind, dict[int, Any]]:
        return {kind: {} for kind in RecordKind}

    def _load(self) -> dict[RecordKind, dict[int, Any]]:
        raw = self._storage.get_item(self._key)
        if raw is None:
            return self._empty()
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("Expected JSON object")
            records = self._empty()
            for kind, cls in RECORD_TYPES.items():
                for item in data.get(kind.value, []):
                    rec = cls.from_dict(item)
                    records[kind][rec.id] = rec
            return records
        except (ValueError, KeyError, TypeError) as e:
            err = StorageError(StorageErrorKind.CORRUPT, f"Unreadable blob under key {self._key!r}: {e}")
            logger.warning("%s; starting with an empty store", err)
            self._quarantine(raw)
            return self._empty()

    def _quarantine(self, raw: str) -> None:
        try:
            self._storage.set_item(self._key + ".corrupt", raw)
        except StorageError:
            logger.exception("Failed to keep a copy of the corrupt blob")

    def _serialize(self) -> str:
        doc: dict[str, Any] = {"version": _BLOB_VERSION}
        for kind in RecordKind:
            doc[kind.value] = [rec.to_dict() for rec in self._records[kind].values()]
        return json.dumps(doc, ensure_ascii=False)

    # ---- transaction hooks ----

    def _begin(self) -> None:
        self._snapshot = {kind: dict(items) for kind, items in self._records.items()}

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._records = self._snapshot
        self._snapshot = None

    # ---- public API ----

    def put(self, record: Record) -> None:
        kind = kind_of(record)
        with self.transaction():
            if isinstance(record, Subtask) and record.task_id not in self._records[RecordKind.TASK]:
                raise NotFoundError("task", record.task_id)
            if isinstance(record, HistorySubtask) and record.history_id not in self._records[RecordKind.HISTORY]:
                raise NotFoundError("history", record.history_id)
            self._records[kind][record.id] = record
        logger.debug("put %s id=%s", kind.value, record.id)

    def get(self, kind: RecordKind, record_id: int) -> Record | None:
        with self._lock:
            return self._records[kind].get(int(record_id))

    def list(self, kind: RecordKind, parent_id: int | None = None) -> list[Record]:
        with self._lock:
            items = list(self._records[kind].values())
        if parent_id is not None:
            if kind is RecordKind.SUBTASK:
                items = [r for r in items if r.task_id == parent_id]
            elif kind is RecordKind.HISTORY_SUBTASK:
                items = [r for r in items if r.history_id == parent_id]
            else:
                raise ValueError(f"{kind.value} records have no parent")
        return sorted(items, key=lambda r: r.id)

    def delete(self, kind: RecordKind, record_id: int) -> bool:
        record_id = int(record_id)
        with self.transaction():
            deleted = self._records[kind].pop(record_id, None) is not None
            if kind is RecordKind.TASK:
                children = self._records[RecordKind.SUBTASK]
                for sid in [s.id for s in children.values() if s.task_id == record_id]:
                    del children[sid]
            elif kind is RecordKind.HISTORY:
                children = self._records[RecordKind.HISTORY_SUBTASK]
                for sid in [s.id for s in children.values() if s.history_id == record_id]:
                    del children[sid]
        logger.debug("delete %s id=%s deleted=%s", kind.value, record_id, deleted)
        return deleted

    def is_empty(self) -> bool:
        with self._lock:
            return not self._records[RecordKind.TASK] and not self._records[RecordKind.HISTORY]

    def max_id(self) -> int:
        with self._lock:
            return max((max(items, default=0) for items in self._records.values()), default=0)

    def persist(self) -> None:
        with self._lock:
            blob = self._serialize()
        self._storage.set_item(self._key, blob)
        logger.debug("BlobStore flushed key=%s bytes=%d", self._key, len(blob))
