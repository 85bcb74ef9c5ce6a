# src/task_checklist/errors.py

"""
Error taxonomy shared by the store, the repository and the front-ends.

- ValidationError: caller input violates a precondition (nothing applied).
- NotFoundError: a referenced task/subtask/history entry does not exist.
- StorageError: the durable medium could not be read or written.
"""

from __future__ import annotations

from enum import StrEnum


class ChecklistError(Exception):
    """Base class for all errors raised by task_checklist."""


class ValidationError(ChecklistError, ValueError):
    pass


class NotFoundError(ChecklistError, LookupError):
    def __init__(self, kind: str, record_id: int, message: str | None = None) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(message or f"{kind} {record_id} not found")


class StorageErrorKind(StrEnum):
    QUOTA_EXCEEDED = "quota_exceeded"
    CORRUPT = "corrupt"
    UNAVAILABLE = "unavailable"


class StorageError(ChecklistError):
    def __init__(self, kind: StorageErrorKind, message: str) -> None:
        self.kind = kind
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.args[0]} ({self.kind.value})"


class NotificationError(ChecklistError):
    """A notification capability call failed (the bridge logs and drops these)."""
