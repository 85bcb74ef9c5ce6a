# src/task_checklist/notifications/__init__.py

from __future__ import annotations

import logging

from ..core.ports import NotificationCapability
from .bridge import NotificationBridge, render_notification
from .capability import NullNotificationCapability
from .runner import BackgroundLoop

logger = logging.getLogger(__name__)

__all__ = [
    "BackgroundLoop",
    "NotificationBridge",
    "NullNotificationCapability",
    "build_notification_capability",
    "render_notification",
]


def build_notification_capability(settings) -> NotificationCapability:
    """Matrix when enabled and fully configured, otherwise the null capability."""
    if not getattr(settings, "notifications_enabled", False):
        return NullNotificationCapability()

    missing = [
        name
        for name in ("matrix_homeserver", "matrix_user_id", "matrix_room_id")
        if not (getattr(settings, name, "") or "").strip()
    ]
    if missing:
        logger.warning("Notifications enabled but Matrix is not configured (missing: %s).", ", ".join(missing))
        return NullNotificationCapability()

    # nio is only imported when Matrix is actually used.
    from .matrix import MatrixNotificationCapability

    return MatrixNotificationCapability(settings)
