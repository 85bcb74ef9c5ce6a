# src/task_checklist/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable, Coroutine, Iterator
from datetime import datetime
from typing import Any, cast

from ..core.state import AppState
from ..domain.countdown import countdown
from ..errors import ChecklistError, NotFoundError, StorageError, ValidationError
from ..storage.models import HistoryEntry, Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Checklist errors are turned into a readable reply; anything else propagates.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except StorageError as e:
            logger.error("Storage error in /%s: %s", name, e)
            return f"Warning: your change is kept for this session but was not saved to disk yet ({e})."
        except NotFoundError as e:
            return f"Not found: {e}."
        except ValidationError as e:
            return f"Invalid input: {e}."
        except ChecklistError as e:
            logger.warning("Command /%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _parse_id(raw: str, what: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{what} id must be a number, got {raw!r}") from None


def _require_args(args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise ValidationError(f"usage: {usage}")


def _fmt_local(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _format_task_line(task: Task, now: datetime | None = None) -> str:
    left = countdown(task.due_at, now)
    marker = " (!)" if left.urgent else ""
    line = f"[{task.id}] {task.title} | due {_fmt_local(task.due_at)} | {left.text}{marker}"
    if task.subtasks:
        line += f" | {task.progress}% ({task.completed_count}/{len(task.subtasks)})"
    return line


def _format_task(task: Task, now: datetime | None = None) -> str:
    lines = [_format_task_line(task, now)]
    if task.note:
        lines.append(f"  note: {task.note}")
    for st in task.subtasks:
        box = "[x]" if st.completed else "[ ]"
        lines.append(f"  {box} {st.id} {st.text}")
        if st.note:
            lines.append(f"        note: {st.note}")
    return "\n".join(lines)


def _format_history_line(entry: HistoryEntry) -> str:
    return (
        f"[{entry.id}] {entry.title} | completed {_fmt_local(entry.completed_at)}"
        f" | {entry.completed_count}/{len(entry.subtasks)} subtasks"
    )


def _notify(state: AppState, coro: Coroutine[Any, Any, Any]) -> None:
    """Hand a bridge call to the background loop without waiting for it."""
    if not state.loop.running:
        coro.close()
        return
    try:
        state.loop.submit(coro)
    except RuntimeError:
        logger.debug("Notification loop stopped; update dropped.", exc_info=True)


def _refresh_pin(state: AppState, task_id: int) -> None:
    if state.notifications.pinned_task_id != task_id:
        return
    _notify(state, state.notifications.refresh(task_id, state.repository.get_task(task_id)))


@contextlib.contextmanager
def _refreshing_pin(state: AppState, task_id: int) -> Iterator[None]:
    # A StorageError from the flush still leaves the write applied in memory.
    try:
        yield
    finally:
        _refresh_pin(state, task_id)


# ---- general ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    repo = state.repository
    migration = state.migration.status.value if state.migration else "n/a"
    pinned = state.notifications.pinned_task_id
    return (
        "Status:\n"
        f"  Storage: {settings.storage_backend}\n"
        f"  Tasks: {len(repo.list_tasks())}, history: {len(repo.list_history())}\n"
        f"  Notifications: {'ON' if state.notifications.enabled else 'OFF'}"
        f" (pinned: {pinned if pinned is not None else '-'})\n"
        f"  Legacy migration: {migration}"
    )


def cmd_save(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("Saving...")
    state.repository.flush()
    return "Saved."


# ---- tasks ----


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <due> <title...>  e.g. /add 2030-01-01T18:00 Buy milk"""
    _require_args(args, 2, "/add <due> <title...>")
    task = state.repository.add_task(" ".join(args[1:]), args[0])
    return f"Added task {task.id}: {task.title} (due {_fmt_local(task.due_at)})"


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.repository.list_tasks()
    if not tasks:
        return "No tasks. Add one with /add <due> <title>."
    now = datetime.now().astimezone()
    return "\n".join(["Tasks:"] + [_format_task_line(t, now) for t in tasks])


def cmd_show(state: AppState, args: list[str]) -> str:
    _require_args(args, 1, "/show <task>")
    task_id = _parse_id(args[0], "task")
    task = state.repository.get_task(task_id)
    if task is None:
        raise NotFoundError("task", task_id)
    return _format_task(task)


def cmd_title(state: AppState, args: list[str]) -> str:
    _require_args(args, 2, "/title <task> <text...>")
    task_id = _parse_id(args[0], "task")
    with _refreshing_pin(state, task_id):
        task = state.repository.update_task(task_id, title=" ".join(args[1:]))
    return f"Task {task.id} renamed to: {task.title}"


def cmd_due(state: AppState, args: list[str]) -> str:
    _require_args(args, 2, "/due <task> <due>")
    task_id = _parse_id(args[0], "task")
    with _refreshing_pin(state, task_id):
        task = state.repository.update_task(task_id, due_date=args[1])
    return f"Task {task.id} is now due {_fmt_local(task.due_at)}"


def cmd_note(state: AppState, args: list[str]) -> str:
    """/note <task> [text...]  (no text clears the note)"""
    _require_args(args, 1, "/note <task> [text...]")
    task_id = _parse_id(args[0], "task")
    task = state.repository.update_task(task_id, note=" ".join(args[1:]))
    return f"Note saved for task {task.id}." if task.note else f"Note cleared for task {task.id}."


def cmd_rm(state: AppState, args: list[str]) -> str:
    _require_args(args, 1, "/rm <task>")
    task_id = _parse_id(args[0], "task")
    with _refreshing_pin(state, task_id):
        deleted = state.repository.delete_task(task_id)
    if not deleted:
        return f"Task {task_id} does not exist (nothing deleted)."
    return f"Task {task_id} deleted."


def cmd_done(state: AppState, args: list[str]) -> str:
    _require_args(args, 1, "/done <task>")
    task_id = _parse_id(args[0], "task")
    with _refreshing_pin(state, task_id):
        entry = state.repository.complete_task(task_id)
    return f"Task {task_id} completed and moved to history as {entry.id}."


# ---- subtasks ----


def cmd_sub(state: AppState, args: list[str]) -> str:
    _require_args(args, 2, "/sub <task> <text...>")
    task_id = _parse_id(args[0], "task")
    with _refreshing_pin(state, task_id):
        subtask = state.repository.add_subtask(task_id, " ".join(args[1:]))
    return f"Added subtask {subtask.id} to task {task_id}."


def cmd_check(state: AppState, args: list[str]) -> str:
    _require_args(args, 2, "/check <task> <sub>")
    task_id = _parse_id(args[0], "task")
    subtask_id = _parse_id(args[1], "subtask")
    with _refreshing_pin(state, task_id):
        subtask = state.repository.toggle_subtask(task_id, subtask_id)
    return f"Subtask {subtask.id} {'done' if subtask.completed else 'not done'}."


def cmd_subnote(state: AppState, args: list[str]) -> str:
    _require_args(args, 2, "/subnote <task> <sub> [text...]")
    task_id = _parse_id(args[0], "task")
    subtask = state.repository.update_subtask_note(task_id, _parse_id(args[1], "subtask"), " ".join(args[2:]))
    return f"Note {'saved' if subtask.note else 'cleared'} for subtask {subtask.id}."


def cmd_unsub(state: AppState, args: list[str]) -> str:
    _require_args(args, 2, "/unsub <task> <sub>")
    task_id = _parse_id(args[0], "task")
    subtask_id = _parse_id(args[1], "subtask")
    with _refreshing_pin(state, task_id):
        state.repository.delete_subtask(task_id, subtask_id)
    return f"Subtask {subtask_id} deleted."


# ---- history ----


def cmd_history(state: AppState, args: list[str]) -> str:
    entries = state.repository.list_history()
    if not entries:
        return "History is empty."
    return "\n".join(["History (latest first):"] + [_format_history_line(e) for e in entries])


def cmd_restore(state: AppState, args: list[str]) -> str:
    _require_args(args, 1, "/restore <entry>")
    history_id = _parse_id(args[0], "history")
    task = state.repository.restore_from_history(history_id)
    return f"History entry {history_id} restored as task {task.id}."


def cmd_purge(state: AppState, args: list[str]) -> str:
    _require_args(args, 1, "/purge <entry>")
    history_id = _parse_id(args[0], "history")
    if not state.repository.delete_history_entry(history_id):
        return f"History entry {history_id} does not exist (nothing deleted)."
    return f"History entry {history_id} deleted."


# ---- notifications ----


def cmd_pin(state: AppState, args: list[str]) -> str:
    _require_args(args, 1, "/pin <task>")
    task_id = _parse_id(args[0], "task")
    task = state.repository.get_task(task_id)
    if task is None:
        raise NotFoundError("task", task_id)
    if not state.loop.running:
        return "Notifications are not running."
    _notify(state, state.notifications.display(task))
    return f"Pinned task {task_id} to notifications."


def cmd_unpin(state: AppState, args: list[str]) -> str:
    if state.notifications.pinned_task_id is None:
        return "Nothing is pinned."
    _notify(state, state.notifications.clear())
    return "Notification cleared."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show storage, counts and notification state.")
registry.register("add", cmd_add, help_text="Add a task: /add <due> <title...> (due like 2030-01-01T18:00).")
registry.register("list", cmd_list, help_text="List tasks, soonest due first.", aliases=["ls"])
registry.register("show", cmd_show, help_text="Show a task with its subtasks: /show <task>.")
registry.register("title", cmd_title, help_text="Rename a task: /title <task> <text...>.")
registry.register("due", cmd_due, help_text="Change a due date: /due <task> <due>.")
registry.register("note", cmd_note, help_text="Set or clear a task note: /note <task> [text...].")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task>.")
registry.register("sub", cmd_sub, help_text="Add a subtask: /sub <task> <text...>.")
registry.register("check", cmd_check, help_text="Toggle a subtask: /check <task> <sub>.")
registry.register("subnote", cmd_subnote, help_text="Set or clear a subtask note: /subnote <task> <sub> [text...].")
registry.register("unsub", cmd_unsub, help_text="Delete a subtask: /unsub <task> <sub>.")
registry.register("done", cmd_done, help_text="Complete a task (moves it to history): /done <task>.")
registry.register("history", cmd_history, help_text="List completed tasks.")
registry.register("restore", cmd_restore, help_text="Restore a history entry as a task: /restore <entry>.")
registry.register("purge", cmd_purge, help_text="Delete a history entry: /purge <entry>.")
registry.register("pin", cmd_pin, help_text="Mirror a task into the notification: /pin <task>.")
registry.register("unpin", cmd_unpin, help_text="Clear the notification.")
registry.register("save", cmd_save, help_text="Write pending changes to disk now.")
