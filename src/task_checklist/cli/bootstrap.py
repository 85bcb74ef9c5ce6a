# src/task_checklist/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- opens LocalStorage and the configured Store, wraps it in a TaskRepository,
- migrates legacy data before anything else touches the repository,
- wires the notification capability into a bridge running on a background loop.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..domain.repository import TaskRepository
from ..errors import ChecklistError, StorageError
from ..migration import MigrationStatus, migrate_legacy_storage
from ..notifications import BackgroundLoop, NotificationBridge, build_notification_capability
from ..storage import LocalStorage, open_store

logger = logging.getLogger(__name__)

# Startup waits this long for the capability (Matrix login/join) before carrying on.
PERMISSION_TIMEOUT_SECONDS = 30.0


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.local_storage_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, start_notifications: bool = True) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    local_storage = LocalStorage(
        settings.local_storage_path,
        quota_bytes=settings.local_storage_quota_bytes,
    )
    store = open_store(
        settings.storage_backend,
        db_path=settings.db_path,
        local_storage=local_storage,
        flush_delay_seconds=settings.flush_delay_seconds,
    )
    repository = TaskRepository(store)

    migration = migrate_legacy_storage(local_storage, repository)
    if migration.status is MigrationStatus.MIGRATED:
        logger.info(
            "Legacy data migrated: %d tasks, %d history entries.",
            migration.tasks,
            migration.history_entries,
        )
    elif migration.status is MigrationStatus.FAILED:
        logger.error("Legacy migration failed; legacy data kept for the next start: %s", migration.error)

    state = AppState(
        settings=settings,
        repository=repository,
        local_storage=local_storage,
        notifications=NotificationBridge(build_notification_capability(settings)),
        loop=BackgroundLoop(),
        migration=migration,
    )
    state.notifications.on_action(lambda task_id, action: handle_notification_action(state, task_id, action))

    if start_notifications:
        start_notifications_loop(state)
    return state


def start_notifications_loop(state: AppState) -> None:
    """Start the background loop and ask the capability for permission once."""
    state.loop.start()
    try:
        enabled = state.loop.call(state.notifications.start(), timeout=PERMISSION_TIMEOUT_SECONDS)
    except Exception:
        logger.exception("Notification startup failed; continuing without notifications.")
        return
    logger.info("Notifications: %s", "ON" if enabled else "OFF")


def handle_notification_action(state: AppState, task_id: int, action: str) -> None:
    """
    React to an action sent back from the notification surface.

    - "done": complete the task (the pinned notification is cleared)
    - anything else: logged and ignored
    """
    if action != "done":
        logger.info("Notification action %r for task %s ignored.", action, task_id)
        return

    with state.lock:
        try:
            state.repository.complete_task(task_id)
        except StorageError as e:
            if state.repository.get_task(task_id) is not None:
                logger.warning("Could not complete task %s from notification: %s", task_id, e)
                return
            # Completed in memory; only the save to disk failed.
            logger.warning("Task %s completed from notification but not saved yet: %s", task_id, e)
        except ChecklistError as e:
            logger.warning("Could not complete task %s from notification: %s", task_id, e)
            return
        task = state.repository.get_task(task_id)

    state.loop.submit(state.notifications.refresh(task_id, task))


def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.repository.close()
    except Exception:
        logger.exception("Failed to flush tasks on shutdown.")

    if state.loop.running:
        try:
            state.loop.call(state.notifications.aclose(), timeout=10.0)
        except Exception:
            logger.debug("Notification close failed.", exc_info=True)
        state.loop.stop()
