# src/task_checklist/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The repository depends on a RecordStore Protocol instead of a concrete backend,
and the notification bridge depends on a NotificationCapability. This keeps
storage technologies and notification surfaces swappable and makes testing easier.
"""

from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Protocol

from ..storage.models import Record, RecordKind

ActionListener = Callable[[int, str], None]
# (task_id, action_id), e.g. (1712345678901, "done").


class RecordStore(Protocol):
    """
    Durable storage of the four record kinds.

    Reads never raise for "not found"; deleting a task/history record removes its
    children in the same write. Writes inside transaction() are all-or-nothing.
    """

    def put(self, record: Record) -> None: ...
    def get(self, kind: RecordKind, record_id: int) -> Record | None: ...
    def list(self, kind: RecordKind, parent_id: int | None = None) -> list[Record]: ...
    def delete(self, kind: RecordKind, record_id: int) -> bool: ...
    def transaction(self) -> AbstractContextManager[None]: ...

    def is_empty(self) -> bool: ...
    def max_id(self) -> int: ...

    # Durability
    def persist(self) -> None: ...
    def schedule_flush(self) -> None: ...
    def flush_now(self) -> None: ...
    def close(self) -> None: ...


class NotificationCapability(Protocol):
    """Host-provided persistent notification surface (best-effort, async)."""

    async def request_permission(self) -> bool: ...

    async def schedule(
            self,
            *,
            notification_id: int,
            title: str,
            body: str,
            persistent: bool,
    ) -> None: ...

    async def cancel(self, notification_id: int) -> None: ...

    def set_action_listener(self, listener: ActionListener | None) -> None: ...

    async def aclose(self) -> None: ...
