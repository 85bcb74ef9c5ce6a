# src/task_checklist/notifications/matrix.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from nio import (
    AsyncClient,
    AsyncClientConfig,
    JoinResponse,
    LoginResponse,
    MatrixRoom,
    RoomMessageText,
    RoomRedactResponse,
    RoomSendResponse,
)

from ..core.ports import ActionListener
from ..errors import NotificationError

logger = logging.getLogger(__name__)

# "!done 1712345678901", "!open 1712345678901"
_ACTION_RE = re.compile(r"^!(?P<action>[a-z][a-z_-]*)\s+(?P<task_id>\d+)\s*$", re.IGNORECASE)

ClientFactory = Callable[[Any], Awaitable[AsyncClient | None]]


def _ms_now() -> int:
    return int(time.time() * 1000)


def _session_path(store_dir: Path) -> Path:
    # Keep session tokens in a single predictable place under a gitignored local dir.
    return store_dir / "session.json"


def _load_json(path: Path) -> dict[str, Any]:
    val = json.loads(path.read_text("utf-8"))
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Best-effort: not critical on Windows or restricted FS.
        os.chmod(path, 0o600)


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Create a Matrix AsyncClient for posting notifications.

    Why we persist session.json:
    - It allows reusing the access token/device id across restarts without logging in again.
    - The file contains sensitive data and must never be committed (store under a gitignored dir).
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/checklist/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set CHECKLIST_MATRIX_HOMESERVER and CHECKLIST_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = _session_path(store_dir)

    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False),
    )

    # ---- Session restore ----
    if session_file.exists():
        try:
            data = _load_json(session_file)
            access_token = data.get("access_token")
            sess_user_id = data.get("user_id")
            device_id = data.get("device_id")
            if not access_token or not sess_user_id or not device_id:
                raise ValueError("session.json is missing required fields")

            client.access_token = str(access_token)
            client.user_id = str(sess_user_id)
            client.device_id = str(device_id)
            logger.info("Matrix session restored for %s", client.user_id)
            return client
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore Matrix session.json, will try password login: %r", e)

    # ---- Password login bootstrap ----
    if not password:
        logger.error(
            "Matrix session.json not found and password is not set. "
            "Set CHECKLIST_MATRIX_PASSWORD once to bootstrap a session."
        )
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'checklist')} (Python)"
    logger.info("Logging in to Matrix to bootstrap a new session (device_name=%r)...", device_name)

    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        _atomic_write_json(
            session_file,
            {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
        )
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        # The client is logged in; it just has to log in again next start.
        logger.error("Failed to write Matrix session.json (%s): %r", session_file, e)

    return client


class MatrixNotificationCapability:
    """
    Notification surface backed by one Matrix room.

    - schedule(): posts an m.notice "<title>\\n<body>"; persistent ones are
      remembered by event id, and re-scheduling the same id redacts the old notice
    - cancel(): redacts the remembered notice
    - inbound actions: "!<action> <task_id>" messages from other users in the room
      are passed to the action listener (a background sync loop receives them)
    """

    def __init__(self, settings, *, client_factory: ClientFactory = create_matrix_client) -> None:
        self._settings = settings
        self._room_id = (getattr(settings, "matrix_room_id", "") or "").strip()
        self._client_factory = client_factory
        self._client: AsyncClient | None = None
        self._event_ids: dict[int, str] = {}
        self._listener: ActionListener | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._startup_ts = 0

    async def request_permission(self) -> bool:
        if not self._room_id:
            logger.error("Matrix notifications need CHECKLIST_MATRIX_ROOM_ID")
            return False

        client = await self._client_factory(self._settings)
        if client is None:
            return False

        resp = await client.join(self._room_id)
        if not isinstance(resp, JoinResponse):
            logger.error("Failed to join notification room %s: %r", self._room_id, resp)
            await client.close()
            return False

        self._client = client
        self._startup_ts = _ms_now()
        client.add_event_callback(self._on_message, RoomMessageText)
        self._sync_task = asyncio.create_task(self._sync_loop())
        logger.info("Matrix notifications ready (room=%s).", self._room_id)
        return True

    def _require_client(self) -> AsyncClient:
        if self._client is None:
            raise NotificationError("Matrix client is not connected")
        return self._client

    async def schedule(
            self,
            *,
            notification_id: int,
            title: str,
            body: str,
            persistent: bool,
    ) -> None:
        client = self._require_client()

        previous = self._event_ids.pop(notification_id, None)
        if previous is not None:
            await self._redact(client, previous)

        resp = await client.room_send(
            room_id=self._room_id,
            message_type="m.room.message",
            content={"msgtype": "m.notice", "body": f"{title}\n{body}"},
            ignore_unverified_devices=True,
        )
        if not isinstance(resp, RoomSendResponse):
            raise NotificationError(f"Matrix room_send failed: {resp!r}")

        if persistent:
            self._event_ids[notification_id] = resp.event_id
        logger.debug("Notice sent id=%s event=%s", notification_id, resp.event_id)

    async def cancel(self, notification_id: int) -> None:
        event_id = self._event_ids.pop(notification_id, None)
        if event_id is None:
            return
        await self._redact(self._require_client(), event_id)

    async def _redact(self, client: AsyncClient, event_id: str) -> None:
        resp = await client.room_redact(self._room_id, event_id, reason="task notification cleared")
        if not isinstance(resp, RoomRedactResponse):
            logger.warning("Failed to redact notice %s: %r", event_id, resp)

    def set_action_listener(self, listener: ActionListener | None) -> None:
        self._listener = listener

    async def _on_message(self, room: MatrixRoom, event: RoomMessageText) -> None:
        client = self._client
        if client is None or room.room_id != self._room_id:
            return

        # Ignore backlog and our own notices.
        ts = getattr(event, "server_timestamp", None)
        if ts is not None and ts <= self._startup_ts:
            return
        if event.sender == client.user_id:
            return

        m = _ACTION_RE.match((event.body or "").strip())
        if not m or self._listener is None:
            return

        task_id = int(m.group("task_id"))
        action = m.group("action").lower()
        logger.info("Notification action %s for task %s from %s", action, task_id, event.sender)
        self._listener(task_id, action)

    async def _sync_loop(self) -> None:
        client = self._require_client()
        while True:
            try:
                await client.sync(timeout=30000)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Matrix sync failed; retrying.")
                await asyncio.sleep(5.0)

    async def aclose(self) -> None:
        if self._sync_task is not None:
            self._sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._sync_task
            self._sync_task = None

        if self._client is not None:
            with contextlib.suppress(Exception):
                await self._client.close()
            self._client = None
