# src/task_checklist/notifications/bridge.py

from __future__ import annotations

"""
Notification bridge.

Mirrors one "pinned" task into a single persistent external notification:
- display(task) shows/updates it (a different pinned task is cancelled first)
- clear() removes it
- refresh(task_id, task) keeps it in sync after the task changed or went away

The bridge only reads repository output; it never writes to the store. All
capability errors are logged and dropped: notifications are best-effort and
must never fail or roll back the task operation that triggered them.
"""

import logging
from datetime import datetime

from ..core.ports import ActionListener, NotificationCapability
from ..domain.countdown import countdown
from ..storage.models import Task

logger = logging.getLogger(__name__)


def render_notification(task: Task, now: datetime | None = None) -> tuple[str, str]:
    """Title and body for a pinned task, e.g. ("📋 Buy milk", "50% complete • 2d 3h remaining")."""
    left = countdown(task.due_at, now).text
    body = f"{task.progress}% complete • {left}" if task.subtasks else left
    return f"📋 {task.title}", body


class NotificationBridge:
    def __init__(self, capability: NotificationCapability) -> None:
        self._capability = capability
        self._enabled: bool | None = None  # None until start() ran
        self._pinned: int | None = None
        self._handler: ActionListener | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._enabled)

    @property
    def pinned_task_id(self) -> int | None:
        return self._pinned

    async def start(self) -> bool:
        """Ask for permission once; a refusal or failure disables the bridge for good."""
        if self._enabled is not None:
            return self._enabled

        try:
            granted = bool(await self._capability.request_permission())
        except Exception:
            logger.exception("Notification permission request failed; notifications disabled.")
            granted = False

        self._enabled = granted
        if granted:
            self._capability.set_action_listener(self._dispatch_action)
            logger.info("Notifications enabled.")
        return granted

    async def display(self, task: Task, *, now: datetime | None = None) -> None:
        if not await self.start():
            return

        title, body = render_notification(task, now)
        try:
            if self._pinned is not None and self._pinned != task.id:
                await self._capability.cancel(self._pinned)
            self._pinned = task.id
            await self._capability.schedule(
                notification_id=task.id,
                title=title,
                body=body,
                persistent=True,
            )
            logger.debug("Notification shown for task %s", task.id)
        except Exception:
            logger.exception("Failed to show notification for task %s", task.id)

    async def clear(self) -> None:
        if not self._enabled or self._pinned is None:
            return

        pinned, self._pinned = self._pinned, None
        try:
            await self._capability.cancel(pinned)
            logger.debug("Notification cleared for task %s", pinned)
        except Exception:
            logger.exception("Failed to clear notification for task %s", pinned)

    async def refresh(self, task_id: int, task: Task | None, *, now: datetime | None = None) -> None:
        """Re-render the pinned task after a change; clear it if the task is gone."""
        if self._pinned is None or self._pinned != task_id:
            return
        if task is None:
            await self.clear()
        else:
            await self.display(task, now=now)

    # ---- inbound actions ----

    def on_action(self, handler: ActionListener | None) -> None:
        self._handler = handler

    def _dispatch_action(self, task_id: int, action_id: str) -> None:
        handler = self._handler
        if handler is None:
            logger.debug("Notification action %r for task %s ignored (no handler)", action_id, task_id)
            return
        try:
            handler(task_id, action_id)
        except Exception:
            logger.exception("Notification action handler failed task_id=%s action=%s", task_id, action_id)

    async def aclose(self) -> None:
        try:
            await self._capability.aclose()
        except Exception:
            logger.debug("Notification capability close failed.", exc_info=True)
