# src/task_checklist/storage/local_storage.py

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from ..errors import StorageError, StorageErrorKind
from .base import classify_write_error, private_file, quarantine

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


def _utf16_bytes(text: str) -> int:
    return len(text.encode("utf-16-le", "surrogatepass"))


class LocalStorage:
    """
    Durable string -> string map kept in a single JSON file.

    Mirrors browser localStorage semantics:
    - values are opaque text blobs (callers serialize)
    - a total size quota; exceeding it raises StorageError(QUOTA_EXCEEDED)
      and leaves the previous contents untouched
    - every set/remove is written through immediately (atomic replace)

    A corrupt file is moved aside to "<name>.corrupt" and the map starts empty.
    """

    def __init__(self, path: str | Path, *, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._quota = int(quota_bytes)
        self._lock = threading.Lock()
        self._items: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def quota_bytes(self) -> int:
        return self._quota

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            candidate = dict(self._items)
            candidate[key] = str(value)
            size = self._size_of(candidate)
            if self._quota > 0 and size > self._quota:
                raise StorageError(
                    StorageErrorKind.QUOTA_EXCEEDED,
                    f"Storage quota exceeded: {size} > {self._quota} bytes while writing {key!r}",
                )
            self._write(candidate)
            self._items = candidate

    def remove_item(self, key: str) -> None:
        with self._lock:
            if key not in self._items:
                return
            candidate = dict(self._items)
            del candidate[key]
            self._write(candidate)
            self._items = candidate

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def used_bytes(self) -> int:
        with self._lock:
            return self._size_of(self._items)

    # ---- internals ----

    @staticmethod
    def _size_of(items: dict[str, str]) -> int:
        # Two bytes per UTF-16 code unit; astral characters take a surrogate pair.
        return sum(_utf16_bytes(k) + _utf16_bytes(v) for k, v in items.items())

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Expected JSON object")
            return {str(k): str(v) for k, v in data.items()}
        except (OSError, ValueError) as e:
            err = StorageError(StorageErrorKind.CORRUPT, f"Unreadable local storage file {self._path}: {e}")
            logger.warning("%s; starting empty", err)
            quarantine(self._path)
            return {}

    def _write(self, items: dict[str, str]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(items, ensure_ascii=False), "utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise StorageError(classify_write_error(e), f"Failed to write {self._path}: {e}") from e
        private_file(self._path)
