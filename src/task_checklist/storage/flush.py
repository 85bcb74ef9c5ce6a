# src/task_checklist/storage/flush.py

from __future__ import annotations

"""
Debounced durability writes.

The in-memory working set is updated immediately on every write; the durable
flush is delayed so rapid successive mutations coalesce into one write.

Contract:
- trigger(): mark dirty and (re)arm the timer; delay <= 0 flushes synchronously
- flush_now(): cancel the timer and flush if dirty (used on shutdown)
- a failed background flush is remembered and re-raised by the next trigger()

Lock order: the flush callback takes the store lock, so stores must call
trigger()/flush_now() only after releasing their own lock.
"""

import logging
import threading
from collections.abc import Callable

from ..errors import StorageError

logger = logging.getLogger(__name__)


class DebouncedFlusher:
    def __init__(
            self,
            flush: Callable[[], None],
            *,
            delay_seconds: float = 0.3,
            name: str = "store-flush",
    ) -> None:
        self._flush = flush
        self._delay = max(0.0, float(delay_seconds))
        self._name = name
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._dirty = False
        self._failed: StorageError | None = None
        self.flush_count = 0

    @property
    def delay_seconds(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._dirty

    def trigger(self) -> None:
        """Schedule a flush; raise the previous background failure, if any."""
        if self._delay <= 0:
            with self._lock:
                self._dirty = True
            self.flush_now()
            return

        with self._lock:
            self._dirty = True
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._run_timer)
            self._timer.name = self._name
            self._timer.daemon = True
            self._timer.start()
            failed, self._failed = self._failed, None

        if failed is not None:
            raise failed

    def flush_now(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._dirty:
                return
            self._do_flush()
            self._failed = None

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    # ---- internals ----

    def _do_flush(self) -> None:
        # Caller holds self._lock. Stays dirty on failure so a later flush retries.
        self._flush()
        self._dirty = False
        self.flush_count += 1

    def _run_timer(self) -> None:
        with self._lock:
            if self._timer is threading.current_thread():
                self._timer = None
            if not self._dirty:
                return
            try:
                self._do_flush()
            except StorageError as e:
                logger.error("Background flush failed (%s); changes are kept in memory.", e)
                self._failed = e
