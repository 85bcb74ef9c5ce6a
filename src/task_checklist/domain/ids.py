# src/task_checklist/domain/ids.py

from __future__ import annotations

import threading
import time
from collections.abc import Callable


def _now_ms() -> int:
    return int(time.time() * 1000)


class IdAllocator:
    """
    Millisecond-timestamp ids that never repeat.

    next_id() returns max(now_ms, last + 1), so ids stay monotonic even when many
    are allocated within one millisecond or the clock steps backwards.
    """

    def __init__(self, *, start_after: int = 0, clock_ms: Callable[[], int] = _now_ms) -> None:
        self._last = int(start_after)
        self._clock_ms = clock_ms
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            self._last = max(int(self._clock_ms()), self._last + 1)
            return self._last

    def observe(self, used_id: int) -> None:
        """Make sure an externally chosen id (e.g. a migrated one) is never handed out."""
        with self._lock:
            self._last = max(self._last, int(used_id))
