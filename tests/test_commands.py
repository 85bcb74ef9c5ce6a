# tests/test_commands.py

from __future__ import annotations

from task_checklist.cli.commands import CommandRegistry, registry
from task_checklist.errors import StorageError, StorageErrorKind


def _only_id(reply: str, prefix: str) -> int:
    # "Added task 1712345678901: ..." -> 1712345678901
    return int(reply.split(prefix, 1)[1].split(":")[0].split()[0].rstrip("."))


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/BEE y", emit=lambda _: None) == "h3"
    assert called == {"h2": 1, "h3": 1}


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_task_lifecycle_through_commands(state) -> None:
    reply = registry.handle(state, "/add 2030-01-01T10:00 Buy milk")
    assert reply.startswith("Added task")
    task_id = _only_id(reply, "Added task ")

    reply = registry.handle(state, f"/sub {task_id} 2% milk")
    sub_id = _only_id(reply, "Added subtask ")
    assert "not done" not in registry.handle(state, f"/check {task_id} {sub_id}")

    listing = registry.handle(state, "/list")
    assert "Buy milk" in listing
    assert "100% (1/1)" in listing

    assert "moved to history" in registry.handle(state, f"/done {task_id}")
    assert registry.handle(state, "/list").startswith("No tasks")
    assert "1/1 subtasks" in registry.handle(state, "/history")

    reply = registry.handle(state, f"/restore {task_id}")
    assert "restored as task" in reply
    assert "(0/1)" in registry.handle(state, "/list")


def test_errors_are_reported_as_text(state) -> None:
    assert registry.handle(state, "/done 12345").startswith("Not found")
    assert registry.handle(state, "/add 2030-01-01").startswith("Invalid input")
    assert registry.handle(state, "/add someday Buy milk").startswith("Invalid input")
    assert registry.handle(state, "/check abc 1").startswith("Invalid input")
    assert "does not exist" in registry.handle(state, "/rm 999")


def test_storage_error_is_reported_as_warning(state, monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise StorageError(StorageErrorKind.QUOTA_EXCEEDED, "disk full")

    monkeypatch.setattr(state.repository, "add_task", fail)
    reply = registry.handle(state, "/add 2030-01-01T10:00 x")
    assert reply.startswith("Warning:")
    assert "not saved" in reply


def test_pin_displays_and_follows_changes(state, capability) -> None:
    task_id = _only_id(registry.handle(state, "/add 2030-01-01T10:00 Buy milk"), "Added task ")

    assert "Pinned" in registry.handle(state, f"/pin {task_id}")
    assert state.notifications.pinned_task_id == task_id
    assert capability.scheduled[-1].title == "📋 Buy milk"

    registry.handle(state, f"/sub {task_id} bottle")
    assert capability.scheduled[-1].body.startswith("0% complete")

    registry.handle(state, f"/done {task_id}")
    assert capability.cancelled == [task_id]
    assert state.notifications.pinned_task_id is None
    assert registry.handle(state, "/unpin") == "Nothing is pinned."


def test_status_and_save(state) -> None:
    registry.handle(state, "/add 2030-01-01T10:00 a")
    status = registry.handle(state, "/status")
    assert "Storage: sqlite" in status
    assert "Tasks: 1" in status

    emitted: list[str] = []
    assert registry.handle(state, "/save", emit=emitted.append) == "Saved."
    assert emitted == ["Saving..."]


def test_pin_follows_write_even_when_save_fails(state, capability, monkeypatch) -> None:
    task_id = _only_id(registry.handle(state, "/add 2030-01-01T10:00 Buy milk"), "Added task ")
    registry.handle(state, f"/pin {task_id}")

    def disk_full() -> None:
        raise StorageError(StorageErrorKind.QUOTA_EXCEEDED, "disk full")

    monkeypatch.setattr(state.repository.store.flusher, "_flush", disk_full)

    reply = registry.handle(state, f"/done {task_id}")

    assert reply.startswith("Warning:")
    assert state.repository.get_task(task_id) is None
    assert [e.id for e in state.repository.list_history()] == [task_id]
    assert capability.cancelled == [task_id]
    assert state.notifications.pinned_task_id is None
