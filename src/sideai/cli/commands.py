# src/sideai/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TypeVar, cast

from ..core.state import AppState
from ..records.models import Priority, Reminder, ScheduleEvent, Task, utc_now
from ..storage.collection_store import REMINDERS, SCHEDULE_EVENTS, TASKS

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

R = TypeVar("R", Task, ScheduleEvent, Reminder)

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

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
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting helpers ----


def _short_id(record: Task | ScheduleEvent | Reminder) -> str:
    return str(record.id).upper()[:8]


def _fmt_dt(value: datetime | None) -> str:
    if value is None:
        return "-"
    local = value.astimezone() if value.tzinfo is not None else value
    return local.strftime("%Y-%m-%d %H:%M")


def _resolve(records: Sequence[R], prefix: str) -> R | str:
    """Find one record by id prefix. Returns an error message when not exactly one matches."""
    p = prefix.strip().upper()
    if not p:
        return "Missing id."
    matches = [r for r in records if str(r.id).upper().startswith(p)]
    if not matches:
        return f"No record with id {prefix}."
    if len(matches) > 1:
        return f"Id {prefix} is ambiguous ({len(matches)} matches); type more characters."
    return matches[0]


def _minutes(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def _persist_note(state: AppState, collection: str) -> str:
    err = state.records.last_error(collection)
    if err is None:
        return ""
    return f"\n  WARNING: not saved to disk ({type(err).__name__}). Changes live in memory only."


# ---- handlers ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    rm = state.records
    lines = [
        "Status:",
        f"  Data dir: {state.store.data_dir}",
        f"  Tasks: {len(rm.tasks)}  Events: {len(rm.schedule_events)}  Reminders: {len(rm.reminders)}",
        f"  Pending notifications: {len(state.notifications.pending())}",
    ]
    for name in (TASKS, SCHEDULE_EVENTS, REMINDERS):
        err = rm.last_error(name)
        if err is not None:
            lines.append(f"  {name}: last save/load failed ({type(err).__name__}: {err})")
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str]) -> str:
    tasks = sorted(state.records.tasks, key=lambda t: (t.is_completed, -t.priority.rank, t.created_at))
    if not tasks:
        return "No tasks."
    lines = ["Tasks:"]
    for t in tasks:
        mark = "x" if t.is_completed else " "
        remind = f" (remind {_fmt_dt(t.reminder_date)})" if t.reminder_date else ""
        tags = f" [{', '.join(t.tags)}]" if t.tags else ""
        lines.append(f"  [{mark}] {_short_id(t)} {t.priority.value:<6} {t.title}{tags}{remind}")
    return "\n".join(lines)


def cmd_task(state: AppState, args: list[str]) -> str:
    """
    /task add [low|medium|high|urgent] <title>
    /task done <id>
    /task rm <id>
    /task remind <id> <minutes>
    """
    usage = "Usage: /task add [priority] <title> | /task done <id> | /task rm <id> | /task remind <id> <minutes>"
    if not args:
        return usage

    sub = args[0].lower()
    rm = state.records

    if sub == "add":
        rest = args[1:]
        priority = Priority.MEDIUM
        if rest:
            try:
                priority = Priority(rest[0].capitalize())
                rest = rest[1:]
            except ValueError:
                pass
        title = " ".join(rest).strip()
        if not title:
            return "Task title is required."
        added = rm.add_task(Task(title=title, priority=priority))
        if added is None:
            return "Task was not added."
        return f"Task added: {_short_id(added)} {added.title}" + _persist_note(state, TASKS)

    if sub in ("done", "rm", "remind"):
        if len(args) < 2:
            return usage
        found = _resolve(rm.tasks, args[1])
        if isinstance(found, str):
            return found

        if sub == "done":
            toggled = rm.toggle_task_completion(found)
            if toggled is None:
                return "Task no longer exists."
            state_txt = "completed" if toggled.is_completed else "reopened"
            return f"Task {state_txt}: {toggled.title}" + _persist_note(state, TASKS)

        if sub == "rm":
            rm.delete_task(found)
            return f"Task deleted: {found.title}" + _persist_note(state, TASKS)

        if len(args) < 3 or (mins := _minutes(args[2])) is None:
            return usage
        updated = rm.update_task(replace(found, reminder_date=utc_now() + timedelta(minutes=mins)))
        if updated is None:
            return "Task no longer exists."
        return f"Reminder set for {_fmt_dt(updated.reminder_date)}: {updated.title}" + _persist_note(state, TASKS)

    return usage


def cmd_events(state: AppState, args: list[str]) -> str:
    events = sorted(state.records.schedule_events, key=lambda e: e.start_date)
    if not events:
        return "No events."
    lines = ["Events:"]
    for e in events:
        where = f" @ {e.location}" if e.location else ""
        lines.append(f"  {_short_id(e)} {_fmt_dt(e.start_date)} - {_fmt_dt(e.end_date)} {e.title}{where}")
    return "\n".join(lines)


def cmd_event(state: AppState, args: list[str]) -> str:
    """
    /event add <in_minutes> <duration_minutes> <title>
    /event rm <id>
    """
    usage = "Usage: /event add <in_minutes> <duration_minutes> <title> | /event rm <id>"
    if not args:
        return usage

    sub = args[0].lower()
    rm = state.records

    if sub == "add":
        if len(args) < 4:
            return usage
        start_in = _minutes(args[1])
        duration = _minutes(args[2])
        if start_in is None or duration is None or duration < 0:
            return usage
        title = " ".join(args[3:]).strip()
        start = utc_now() + timedelta(minutes=start_in)
        added = rm.add_schedule_event(
            ScheduleEvent(title=title, start_date=start, end_date=start + timedelta(minutes=duration))
        )
        if added is None:
            return "Event was not added."
        return f"Event added: {_short_id(added)} {_fmt_dt(added.start_date)} {added.title}" + _persist_note(
            state, SCHEDULE_EVENTS
        )

    if sub == "rm":
        if len(args) < 2:
            return usage
        found = _resolve(rm.schedule_events, args[1])
        if isinstance(found, str):
            return found
        rm.delete_schedule_event(found)
        return f"Event deleted: {found.title}" + _persist_note(state, SCHEDULE_EVENTS)

    return usage


def cmd_reminders(state: AppState, args: list[str]) -> str:
    reminders = sorted(state.records.reminders, key=lambda r: (r.is_completed, r.reminder_date))
    if not reminders:
        return "No reminders."
    lines = ["Reminders:"]
    for r in reminders:
        mark = "x" if r.is_completed else " "
        lines.append(f"  [{mark}] {_short_id(r)} {_fmt_dt(r.reminder_date)} {r.title}")
    return "\n".join(lines)


def cmd_reminder(state: AppState, args: list[str]) -> str:
    """
    /reminder add <in_minutes> <title>
    /reminder done <id>
    /reminder rm <id>
    """
    usage = "Usage: /reminder add <in_minutes> <title> | /reminder done <id> | /reminder rm <id>"
    if not args:
        return usage

    sub = args[0].lower()
    rm = state.records

    if sub == "add":
        if len(args) < 3 or (mins := _minutes(args[1])) is None:
            return usage
        title = " ".join(args[2:]).strip()
        added = rm.add_reminder(Reminder(title=title, reminder_date=utc_now() + timedelta(minutes=mins)))
        if added is None:
            return "Reminder was not added."
        return f"Reminder added: {_short_id(added)} {_fmt_dt(added.reminder_date)} {added.title}" + _persist_note(
            state, REMINDERS
        )

    if sub in ("done", "rm"):
        if len(args) < 2:
            return usage
        found = _resolve(rm.reminders, args[1])
        if isinstance(found, str):
            return found
        if sub == "done":
            toggled = rm.toggle_reminder_completion(found)
            if toggled is None:
                return "Reminder no longer exists."
            state_txt = "completed" if toggled.is_completed else "reopened"
            return f"Reminder {state_txt}: {toggled.title}" + _persist_note(state, REMINDERS)
        rm.delete_reminder(found)
        return f"Reminder deleted: {found.title}" + _persist_note(state, REMINDERS)

    return usage


def cmd_pending(state: AppState, args: list[str]) -> str:
    items = state.notifications.pending()
    if not items:
        return "No pending notifications."
    lines = ["Pending notifications:"]
    for n in items:
        lines.append(f"  {_fmt_dt(n.fire_at)} {n.title}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show storage status and counts.")
registry.register("tasks", cmd_tasks, help_text="List tasks.")
registry.register("task", cmd_task, help_text="Manage tasks: /task add | done | rm | remind.")
registry.register("events", cmd_events, help_text="List schedule events.")
registry.register("event", cmd_event, help_text="Manage events: /event add | rm.")
registry.register("reminders", cmd_reminders, help_text="List reminders.")
registry.register("reminder", cmd_reminder, help_text="Manage reminders: /reminder add | done | rm.")
registry.register("pending", cmd_pending, help_text="Show scheduled notifications.")
