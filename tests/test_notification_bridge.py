# tests/test_notification_bridge.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from task_checklist.notifications.bridge import NotificationBridge, render_notification
from task_checklist.notifications.capability import NullNotificationCapability
from task_checklist.storage.models import Subtask, Task

from .fakes import FakeNotificationCapability

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)


def _task(task_id: int, *, done: int = 0, total: int = 0, title: str = "Buy milk") -> Task:
    subtasks = tuple(
        Subtask(id=task_id * 10 + i, task_id=task_id, text=f"s{i}", completed=i < done) for i in range(total)
    )
    return Task(id=task_id, title=title, due_at=NOW + timedelta(days=2, hours=3), subtasks=subtasks)


def test_render_notification_with_and_without_subtasks() -> None:
    assert render_notification(_task(1, done=1, total=2), NOW) == ("📋 Buy milk", "50% complete • 2d 3h remaining")
    assert render_notification(_task(1), NOW) == ("📋 Buy milk", "2d 3h remaining")


@pytest.mark.asyncio
async def test_permission_denied_means_no_capability_calls() -> None:
    cap = FakeNotificationCapability(grant=False)
    bridge = NotificationBridge(cap)

    await bridge.display(_task(1), now=NOW)
    await bridge.clear()

    assert bridge.enabled is False
    assert cap.permission_requests == 1
    assert cap.calls == 0
    assert bridge.pinned_task_id is None


@pytest.mark.asyncio
async def test_display_new_task_supersedes_previous() -> None:
    cap = FakeNotificationCapability()
    bridge = NotificationBridge(cap)

    await bridge.display(_task(1), now=NOW)
    await bridge.display(_task(2, title="Call mom"), now=NOW)

    assert cap.cancelled == [1]
    assert [n.notification_id for n in cap.scheduled] == [1, 2]
    assert all(n.persistent for n in cap.scheduled)
    assert cap.scheduled[1].title == "📋 Call mom"
    assert bridge.pinned_task_id == 2
    assert cap.permission_requests == 1


@pytest.mark.asyncio
async def test_redisplay_same_task_does_not_cancel() -> None:
    cap = FakeNotificationCapability()
    bridge = NotificationBridge(cap)

    await bridge.display(_task(1), now=NOW)
    await bridge.refresh(1, _task(1, done=1, total=1), now=NOW)

    assert cap.cancelled == []
    assert cap.scheduled[-1].body.startswith("100% complete")


@pytest.mark.asyncio
async def test_refresh_clears_when_task_is_gone() -> None:
    cap = FakeNotificationCapability()
    bridge = NotificationBridge(cap)
    await bridge.display(_task(1), now=NOW)

    await bridge.refresh(2, None)  # not the pinned task
    assert cap.cancelled == []

    await bridge.refresh(1, None)
    assert cap.cancelled == [1]
    assert bridge.pinned_task_id is None


@pytest.mark.asyncio
async def test_capability_errors_are_swallowed() -> None:
    cap = FakeNotificationCapability(fail_with=RuntimeError("surface gone"))
    bridge = NotificationBridge(cap)

    await bridge.display(_task(1), now=NOW)
    await bridge.clear()

    assert cap.scheduled == []


@pytest.mark.asyncio
async def test_permission_request_exception_disables_bridge() -> None:
    class Exploding(FakeNotificationCapability):
        async def request_permission(self) -> bool:
            raise OSError("no surface")

    cap = Exploding()
    bridge = NotificationBridge(cap)

    assert await bridge.start() is False
    await bridge.display(_task(1), now=NOW)
    assert cap.calls == 0


@pytest.mark.asyncio
async def test_null_capability_is_a_silent_noop() -> None:
    bridge = NotificationBridge(NullNotificationCapability())
    await bridge.display(_task(1), now=NOW)
    await bridge.clear()
    await bridge.aclose()
    assert bridge.enabled is False


@pytest.mark.asyncio
async def test_inbound_actions_reach_handler() -> None:
    cap = FakeNotificationCapability()
    bridge = NotificationBridge(cap)
    seen: list[tuple[int, str]] = []
    bridge.on_action(lambda task_id, action: seen.append((task_id, action)))

    await bridge.start()
    assert cap.listener is not None
    cap.listener(7, "done")

    assert seen == [(7, "done")]


@pytest.mark.asyncio
async def test_failing_action_handler_is_logged_not_raised() -> None:
    cap = FakeNotificationCapability()
    bridge = NotificationBridge(cap)

    def boom(task_id: int, action: str) -> None:
        raise ValueError("handler bug")

    bridge.on_action(boom)
    await bridge.start()
    cap.listener(1, "done")
