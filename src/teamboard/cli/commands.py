# src/teamboard/cli/commands.py

from __future__ import annotations

import inspect
import logging
import mimetypes
import shlex
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import cast

from ..core.models import Priority, Task
from ..core.state import AppState
from ..sync.mutations import ConfirmGate, ImageAttachment, NewTask

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler4 = Callable[
    [AppState, list[str], CommandEmitter | None, ConfirmGate | None], CommandResult
]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)


def _deny(_question: str) -> bool:
    return False


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /task, ...)."""

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

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
        confirm: ConfirmGate | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
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
            nparams = 4

        if nparams >= 4:
            h4 = cast(CommandHandler4, handler)
            result = h4(state, args, emit, confirm or _deny)
        else:
            h3 = cast(CommandHandler3, handler)
            result = h3(state, args, emit)

        if inspect.isawaitable(result):
            result = await result
        return cast(str, result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _status_reply(state: AppState, ok: bool) -> str:
    if ok:
        return state.status.success or "Done."
    return state.status.error or "Cancelled."


def format_task(task: Task) -> str:
    box = "[x]" if task.is_completed else "[ ]"
    due = f" due {task.deadline}" if task.deadline else ""
    img = " [img]" if task.image_url else ""
    return f"{box} {task.id}  {task.title} ({task.priority.value}){due} - {task.assigned_to_email}{img}"


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    me = state.session.current_identity
    team = state.team.active_team
    backend = getattr(state.settings, "backend", "local")
    return (
        "Status:\n"
        f"  Backend: {backend}\n"
        f"  Signed in: {me.display_name if me else 'no'}\n"
        f"  Team: {team.name if team else '-'}\n"
        f"  Filter: {state.filter_user_id}\n"
        f"  Last message: {state.status.message or '-'}"
    )


async def cmd_register(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 3:
        return "Usage: /register <email> <password> <username>"
    ok = await state.session.register(args[0], args[1], " ".join(args[2:]))
    return _status_reply(state, ok)


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /login <email> <password>"
    ok = await state.session.login(args[0], args[1])
    return _status_reply(state, ok) if not ok else "Signing in..."


async def cmd_logout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    ok = await state.session.logout()
    return "Signed out." if ok else _status_reply(state, ok)


def cmd_whoami(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    me = state.session.current_identity
    if me is None:
        return "Not signed in."
    return f"Hi, {me.display_name} ({me.email}, uid={me.uid})"


async def cmd_team(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /team              -> show the active team
    /team create NAME  -> create a team and make it active
    """
    if args and args[0].lower() == "create":
        ok = await state.mutations.create_team(" ".join(args[1:]))
        return _status_reply(state, ok)

    team = state.team.active_team
    if team is None:
        return "No active team. Use /team create <name>."
    return f"Team: {team.name} (id={team.id}, owner={team.owner_email})"


def cmd_members(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if state.team.active_team is None:
        return "No active team."
    roster = state.team.roster
    if not roster:
        return "No members resolved yet."
    lines = [f"Members of {state.team.active_team.name}:"]
    for entry in roster:
        lines.append(f"  {entry.username} ({entry.role.value}) id={entry.user_id}")
    return "\n".join(lines)


def cmd_users(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    users = state.directory.users
    if not users:
        return "No other users."
    lines = ["Users:"]
    for u in users:
        lines.append(f"  {u.id}  {u.display_name} <{u.email}>")
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /add <user_id>  (see /users)"
    ok = await state.mutations.add_member(args[0])
    return _status_reply(state, ok)


def _parse_task_args(args: list[str]) -> tuple[NewTask, str | None]:
    title_parts: list[str] = []
    opts: dict[str, str] = {}
    it = iter(args)
    for a in it:
        if a.startswith("--") and a[2:] in {"desc", "deadline", "priority", "image"}:
            opts[a[2:]] = next(it, "")
        else:
            title_parts.append(a)
    fields = NewTask(
        title=" ".join(title_parts),
        description=opts.get("desc", ""),
        deadline=opts.get("deadline") or None,
        priority=Priority.from_doc(opts.get("priority")),
    )
    return fields, opts.get("image") or None


async def cmd_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /task TITLE [--desc TEXT] [--deadline YYYY-MM-DD] [--priority Low|Medium|High] [--image PATH]
    """
    fields, image_path = _parse_task_args(args)

    image: ImageAttachment | None = None
    if image_path:
        path = Path(image_path).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            return f"Cannot read image {path}: {e}"
        content_type, _ = mimetypes.guess_type(path.name)
        image = ImageAttachment(filename=path.name, data=data, content_type=content_type)
        if emit:
            emit(f"Uploading {path.name} ({len(data)} bytes)...")

    ok = await state.mutations.create_task(fields, image)
    return _status_reply(state, ok)


def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /tasks            -> list with the current filter
    /tasks all        -> clear filter
    /tasks USER_ID    -> only tasks assigned to USER_ID
    """
    if args:
        state.filter_user_id = args[0]
    if state.team.active_team is None:
        return "No active team."

    view = state.view()
    lines = [
        f"Tasks ({view.total} total, {view.pending_count} pending, "
        f"{view.completed_count} completed; filter={state.filter_user_id}):"
    ]
    for t in view.filtered:
        lines.append("  " + format_task(t) + f"  created {_fmt_ts(t.created_at)}")
    return "\n".join(lines)


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /done <task_id>"
    ok = await state.mutations.toggle_task(args[0], True)
    return _status_reply(state, ok)


async def cmd_undo(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /undo <task_id>"
    ok = await state.mutations.toggle_task(args[0], False)
    return _status_reply(state, ok)


async def cmd_rm(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
    confirm: ConfirmGate | None = None,
) -> str:
    if not args:
        return "Usage: /rm <task_id>"
    ok = await state.mutations.delete_task(args[0], confirm or _deny)
    return _status_reply(state, ok)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session/team/filter status.")
registry.register("register", cmd_register, help_text="Create an account: /register EMAIL PASSWORD USERNAME.")
registry.register("login", cmd_login, help_text="Sign in: /login EMAIL PASSWORD.")
registry.register("logout", cmd_logout, help_text="Sign out.")
registry.register("whoami", cmd_whoami, help_text="Show the signed-in user.")
registry.register("team", cmd_team, help_text="Show the active team, or /team create NAME.")
registry.register("members", cmd_members, help_text="Show the live team roster.")
registry.register("users", cmd_users, help_text="List other registered users.")
registry.register("add", cmd_add, help_text="Add a user to the team: /add USER_ID.")
registry.register("task", cmd_task, help_text="Create a task: /task TITLE [--priority High] [--image PATH].")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [all|USER_ID].", aliases=["ls"])
registry.register("done", cmd_done, help_text="Mark a task completed: /done TASK_ID.")
registry.register("undo", cmd_undo, help_text="Mark a task pending again: /undo TASK_ID.")
registry.register("rm", cmd_rm, help_text="Delete a task (asks for confirmation): /rm TASK_ID.")
