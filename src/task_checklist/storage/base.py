# src/task_checklist/storage/base.py

from __future__ import annotations

import contextlib
import errno
import logging
import os
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path

from ..errors import StorageError, StorageErrorKind
from .flush import DebouncedFlusher

logger = logging.getLogger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


def classify_write_error(exc: BaseException) -> StorageErrorKind:
    if isinstance(exc, OSError) and exc.errno in _QUOTA_ERRNOS:
        return StorageErrorKind.QUOTA_EXCEEDED
    if isinstance(exc, sqlite3.Error) and "full" in str(exc).lower():
        # SQLITE_FULL: "database or disk is full"
        return StorageErrorKind.QUOTA_EXCEEDED
    return StorageErrorKind.UNAVAILABLE


def quarantine(path: Path) -> Path | None:
    """Move an unreadable file aside so a later flush cannot overwrite it."""
    target = path.with_name(path.name + ".corrupt")
    try:
        os.replace(path, target)
        return target
    except OSError:
        logger.exception("Failed to move corrupt file %s aside", path)
        return None


def private_file(path: Path) -> None:
    # Best-effort: not critical on Windows or restricted FS.
    with contextlib.suppress(OSError):
        os.chmod(path, 0o600)


class FlushingStore:
    """
    Shared plumbing for stores: working-set lock, nested transactions and the
    debounced flush. Subclasses implement persist() and the begin/commit/rollback hooks.
    """

    def __init__(self, *, flush_delay_seconds: float, name: str) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._flusher = DebouncedFlusher(self.persist, delay_seconds=flush_delay_seconds, name=name)

    @property
    def flusher(self) -> DebouncedFlusher:
        return self._flusher

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outer = self._depth == 0
            if outer:
                self._begin()
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outer:
                    self._rollback()
                raise
            self._depth -= 1
            if outer:
                self._commit()

        # Outside the lock: the flush takes it again from the timer thread.
        if outer:
            self.schedule_flush()

    def schedule_flush(self) -> None:
        self._flusher.trigger()

    def flush_now(self) -> None:
        self._flusher.flush_now()

    def close(self) -> None:
        self._flusher.flush_now()

    # ---- hooks ----

    def persist(self) -> None:
        raise NotImplementedError

    def _begin(self) -> None:
        return

    def _commit(self) -> None:
        return

    def _rollback(self) -> None:
        return
