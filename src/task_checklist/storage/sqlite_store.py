# src/task_checklist/storage/sqlite_store.py

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path
from typing import Any

from ..errors import NotFoundError, StorageError, StorageErrorKind
from .base import FlushingStore, classify_write_error, quarantine
from .models import (
    HistoryRecord,
    HistorySubtask,
    Record,
    RecordKind,
    Subtask,
    TaskRecord,
    from_iso,
    kind_of,
    to_iso,
)

logger = logging.getLogger(__name__)

_TABLES: dict[RecordKind, str] = {
    RecordKind.TASK: "tasks",
    RecordKind.SUBTASK: "subtasks",
    RecordKind.HISTORY: "history",
    RecordKind.HISTORY_SUBTASK: "history_subtasks",
}

_PARENT_COLUMNS: dict[RecordKind, str] = {
    RecordKind.SUBTASK: "task_id",
    RecordKind.HISTORY_SUBTASK: "history_id",
}


class SqliteStore(FlushingStore):
    """
    Embedded relational store.

    The working set is an in-memory SQLite database with real tables and
    ON DELETE CASCADE foreign keys. persist() copies the whole database to
    db_path with the SQLite backup API (temp file + atomic rename), so the file
    on disk is always a complete snapshot.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns in older files
    - add columns with ALTER TABLE only when needed
    """

    def __init__(self, db_path: str | Path, *, flush_delay_seconds: float = 0.3) -> None:
        super().__init__(flush_delay_seconds=flush_delay_seconds, name="sqlite-flush")
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = self._load()
        self._ensure_schema()
        logger.info(
            "SqliteStore ready db=%s tasks=%s history=%s",
            self._db_path,
            self._count(RecordKind.TASK),
            self._count(RecordKind.HISTORY),
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        try:
            super().close()
        finally:
            with self._lock:
                self._conn.close()

    # ---- low-level helpers ----

    @staticmethod
    def _memory_conn() -> sqlite3.Connection:
        # Autocommit mode; transactions are explicit (see _begin/_commit/_rollback).
        conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _load(self) -> sqlite3.Connection:
        conn = self._memory_conn()
        if not self._db_path.exists():
            conn.execute("PRAGMA foreign_keys = ON")
            return conn

        try:
            src = sqlite3.connect(str(self._db_path))
            try:
                src.backup(conn)
            finally:
                src.close()
            (status,) = conn.execute("PRAGMA quick_check").fetchone()
            if status != "ok":
                raise sqlite3.DatabaseError(f"quick_check: {status}")
        except sqlite3.DatabaseError as e:
            err = StorageError(StorageErrorKind.CORRUPT, f"Unreadable database {self._db_path}: {e}")
            logger.warning("%s; starting with an empty store", err)
            conn.close()
            quarantine(self._db_path)
            conn = self._memory_conn()

        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                due_at TEXT NOT NULL,
                note TEXT NOT NULL DEFAULT '',
                created_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS subtasks (
                id INTEGER PRIMARY KEY,
                task_id INTEGER NOT NULL,
                text TEXT NOT NULL,
                note TEXT NOT NULL DEFAULT '',
                completed INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS history (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                due_at TEXT NOT NULL,
                note TEXT NOT NULL DEFAULT '',
                completed_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS history_subtasks (
                id INTEGER PRIMARY KEY,
                history_id INTEGER NOT NULL,
                text TEXT NOT NULL,
                note TEXT NOT NULL DEFAULT '',
                completed INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (history_id) REFERENCES history(id) ON DELETE CASCADE
            )
            """
        )

        # Migrations (safe): add missing columns.
        cur.execute("PRAGMA table_info(tasks)")
        cols = {row["name"] for row in cur.fetchall()}
        if "created_at" not in cols:
            cur.execute("ALTER TABLE tasks ADD COLUMN created_at TEXT")
            logger.info("SqliteStore migration: added column tasks.created_at")

        cur.execute("CREATE INDEX IF NOT EXISTS idx_subtasks_task ON subtasks(task_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_history_subtasks_history ON history_subtasks(history_id)")

    def _count(self, kind: RecordKind) -> int:
        with self._lock:
            (n,) = self._conn.execute(f"SELECT COUNT(*) FROM {_TABLES[kind]}").fetchone()
            return int(n)

    @staticmethod
    def _row_to_record(kind: RecordKind, row: sqlite3.Row) -> Record:
        if kind is RecordKind.TASK:
            return TaskRecord(
                id=int(row["id"]),
                title=row["title"],
                due_at=from_iso(row["due_at"]),
                note=row["note"] or "",
                created_at=from_iso(row["created_at"]) if row["created_at"] else None,
            )
        if kind is RecordKind.SUBTASK:
            return Subtask(
                id=int(row["id"]),
                task_id=int(row["task_id"]),
                text=row["text"],
                note=row["note"] or "",
                completed=bool(row["completed"]),
            )
        if kind is RecordKind.HISTORY:
            return HistoryRecord(
                id=int(row["id"]),
                title=row["title"],
                due_at=from_iso(row["due_at"]),
                note=row["note"] or "",
                completed_at=from_iso(row["completed_at"]),
            )
        return HistorySubtask(
            id=int(row["id"]),
            history_id=int(row["history_id"]),
            text=row["text"],
            note=row["note"] or "",
            completed=bool(row["completed"]),
        )

    # ---- transaction hooks ----

    def _begin(self) -> None:
        self._conn.execute("BEGIN")

    def _commit(self) -> None:
        self._conn.execute("COMMIT")

    def _rollback(self) -> None:
        self._conn.execute("ROLLBACK")

    # ---- public API ----

    def put(self, record: Record) -> None:
        kind = kind_of(record)
        sql: str
        params: tuple[Any, ...]

        if isinstance(record, TaskRecord):
            sql = """
                INSERT INTO tasks (id, title, due_at, note, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    due_at = excluded.due_at,
                    note = excluded.note,
                    created_at = excluded.created_at
            """
            params = (
                record.id,
                record.title,
                to_iso(record.due_at),
                record.note,
                to_iso(record.created_at) if record.created_at else None,
            )
        elif isinstance(record, Subtask):
            sql = """
                INSERT INTO subtasks (id, task_id, text, note, completed)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    task_id = excluded.task_id,
                    text = excluded.text,
                    note = excluded.note,
                    completed = excluded.completed
            """
            params = (record.id, record.task_id, record.text, record.note, 1 if record.completed else 0)
        elif isinstance(record, HistoryRecord):
            sql = """
                INSERT INTO history (id, title, due_at, note, completed_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    due_at = excluded.due_at,
                    note = excluded.note,
                    completed_at = excluded.completed_at
            """
            params = (
                record.id,
                record.title,
                to_iso(record.due_at),
                record.note,
                to_iso(record.completed_at),
            )
        else:
            sql = """
                INSERT INTO history_subtasks (id, history_id, text, note, completed)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    history_id = excluded.history_id,
                    text = excluded.text,
                    note = excluded.note,
                    completed = excluded.completed
            """
            params = (record.id, record.history_id, record.text, record.note, 1 if record.completed else 0)

        with self.transaction():
            try:
                self._conn.execute(sql, params)
            except sqlite3.IntegrityError as e:
                if "FOREIGN KEY" not in str(e).upper():
                    raise StorageError(StorageErrorKind.UNAVAILABLE, f"Rejected {kind.value} write: {e}") from e
                if isinstance(record, Subtask):
                    raise NotFoundError("task", record.task_id) from e
                if isinstance(record, HistorySubtask):
                    raise NotFoundError("history", record.history_id) from e
                raise
        logger.debug("put %s id=%s", kind.value, record.id)

    def get(self, kind: RecordKind, record_id: int) -> Record | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT * FROM {_TABLES[kind]} WHERE id = ?", (int(record_id),)
            ).fetchone()
        return self._row_to_record(kind, row) if row else None

    def list(self, kind: RecordKind, parent_id: int | None = None) -> list[Record]:
        query = f"SELECT * FROM {_TABLES[kind]}"
        params: tuple[Any, ...] = ()
        if parent_id is not None:
            column = _PARENT_COLUMNS.get(kind)
            if column is None:
                raise ValueError(f"{kind.value} records have no parent")
            query += f" WHERE {column} = ?"
            params = (int(parent_id),)
        query += " ORDER BY id ASC"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_record(kind, r) for r in rows]

    def delete(self, kind: RecordKind, record_id: int) -> bool:
        with self.transaction():
            cur = self._conn.execute(f"DELETE FROM {_TABLES[kind]} WHERE id = ?", (int(record_id),))
            deleted = cur.rowcount > 0
        logger.debug("delete %s id=%s deleted=%s", kind.value, record_id, deleted)
        return deleted

    def is_empty(self) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT EXISTS(SELECT 1 FROM tasks) OR EXISTS(SELECT 1 FROM history)"
            ).fetchone()
        return not row[0]

    def max_id(self) -> int:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT MAX(m) FROM (
                    SELECT MAX(id) AS m FROM tasks
                    UNION ALL SELECT MAX(id) FROM subtasks
                    UNION ALL SELECT MAX(id) FROM history
                    UNION ALL SELECT MAX(id) FROM history_subtasks
                )
                """
            ).fetchone()
        return int(row[0] or 0)

    def persist(self) -> None:
        tmp = self._db_path.with_name(self._db_path.name + ".tmp")
        with self._lock:
            try:
                tmp.unlink(missing_ok=True)
                dest = sqlite3.connect(str(tmp))
                try:
                    self._conn.backup(dest)
                finally:
                    dest.close()
                os.replace(tmp, self._db_path)
            except (sqlite3.Error, OSError) as e:
                raise StorageError(classify_write_error(e), f"Failed to write {self._db_path}: {e}") from e
        logger.debug("SqliteStore flushed to %s", self._db_path)
