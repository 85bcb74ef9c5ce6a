# src/task_checklist/storage/__init__.py

from __future__ import annotations

from pathlib import Path

from .blob_store import BlobStore
from .local_storage import LocalStorage
from .sqlite_store import SqliteStore

__all__ = ["BlobStore", "LocalStorage", "SqliteStore", "open_store"]


def open_store(
        backend: str,
        *,
        db_path: str | Path,
        local_storage: LocalStorage,
        flush_delay_seconds: float = 0.3,
) -> SqliteStore | BlobStore:
    """Pick the backing technology once, at startup."""
    if backend == "sqlite":
        return SqliteStore(db_path, flush_delay_seconds=flush_delay_seconds)
    if backend == "blob":
        return BlobStore(local_storage, flush_delay_seconds=flush_delay_seconds)
    raise ValueError(f"Unknown storage backend: {backend!r}")
