# src/teamboard/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.models import Task
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _confirm(question: str) -> bool:
    # Synchronous gate: blocks the loop until answered.
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _prompt(state: AppState) -> str:
    me = state.session.current_identity
    who = me.display_name if me is not None else "guest"
    team = state.team.active_team
    return f">>> {who}@{team.name}: " if team is not None else f">>> {who}: "


async def run_console_loop(state: AppState) -> None:
    """
    Interactive console.

    Input is read in a worker thread so subscription pushes keep flowing
    on the event loop while the prompt is waiting.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        _print_ts(text)

    # Live feedback: tell the user when the task list changes under them.
    last_count = {"n": -1}

    def _on_tasks(tasks: list[Task]) -> None:
        if last_count["n"] >= 0 and len(tasks) != last_count["n"]:
            _print_ts(f"[sync] task list updated ({len(tasks)} tasks)")
        last_count["n"] = len(tasks)

    remove_tasks_listener = state.tasks.add_listener(_on_tasks)

    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, _prompt(state))).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                reply = await command_registry.handle(state, user_input, emit=emit, confirm=_confirm)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is None:
                reply = "Commands start with '/'. Use /help to list them."
            _print_ts(reply)
    finally:
        remove_tasks_listener()
        logger.info("Console connector finished.")
