# src/task_checklist/notifications/capability.py

from __future__ import annotations

import logging

from ..core.ports import ActionListener

logger = logging.getLogger(__name__)


class NullNotificationCapability:
    """
    Capability for hosts without a notification surface.

    Permission is never granted, so the bridge disables itself after start();
    every call is a safe no-op.
    """

    async def request_permission(self) -> bool:
        logger.info("No notification capability on this host; notifications disabled.")
        return False

    async def schedule(
            self,
            *,
            notification_id: int,
            title: str,
            body: str,
            persistent: bool,
    ) -> None:
        return

    async def cancel(self, notification_id: int) -> None:
        return

    def set_action_listener(self, listener: ActionListener | None) -> None:
        return

    async def aclose(self) -> None:
        return
