# src/task_checklist/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..domain.repository import TaskRepository
from ..migration import MigrationResult
from ..notifications.bridge import NotificationBridge
from ..notifications.runner import BackgroundLoop
from ..storage.local_storage import LocalStorage


@dataclass
class AppState:
    """
    Global application state.

    Notes:
    - Not a "pure" domain object: it wires the repository, notifications and settings together.
    - Front-ends (console, notification actions) share one repository, so they take `lock`
      around every command. Notification actions arrive on the background loop thread.
    """

    settings: Any

    repository: TaskRepository
    local_storage: LocalStorage
    notifications: NotificationBridge
    loop: BackgroundLoop

    migration: MigrationResult | None = None

    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
