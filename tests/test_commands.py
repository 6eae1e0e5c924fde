# tests/test_commands.py

from __future__ import annotations

from pathlib import Path

import pytest

from teamboard.cli.commands import CommandRegistry, registry
from teamboard.core.state import AppState

from .fakes import RecordingConfirm, settle


@pytest.mark.asyncio
async def test_command_registry_routes_3_and_4_params(state) -> None:
    reg = CommandRegistry()
    called = {"h3": 0, "h4": 0}

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3:" + ",".join(args)

    async def h4(state, args, emit, confirm):
        called["h4"] += 1
        return "yes" if confirm("sure?") else "no"

    reg.register("a", h3, "a")
    reg.register("b", h4, "b")

    notes: list[str] = []
    assert await reg.handle(state, '/a x "y z"', emit=notes.append) == "h3:x,y z"
    assert notes == ["note"]
    assert await reg.handle(state, "/b", confirm=lambda _: True) == "yes"
    # Without a confirmation gate the answer is "no".
    assert await reg.handle(state, "/b") == "no"
    assert called == {"h3": 1, "h4": 2}


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_help_lists_registered_commands(state) -> None:
    text = await registry.handle(state, "/help")
    for name in ("/register", "/login", "/team", "/add", "/task", "/tasks", "/done", "/rm"):
        assert name in text


@pytest.mark.asyncio
async def test_console_flow(state: AppState, tmp_path: Path) -> None:
    state.start()
    await settle()

    assert await registry.handle(state, "/whoami") == "Not signed in."
    assert await registry.handle(state, "/register bob@x.io secret1 bob") == "Registration complete!"
    await settle()
    bob_id = state.session.current_identity.uid
    assert await registry.handle(state, "/logout") == "Signed out."

    assert await registry.handle(state, "/register alice@x.io secret1 alice") == "Registration complete!"
    await settle()
    assert "alice" in await registry.handle(state, "/whoami")

    assert await registry.handle(state, "/tasks") == "No active team."
    assert await registry.handle(state, "/team create Core Team") == "Team created!"
    await settle()
    assert "Core Team" in await registry.handle(state, "/team")

    assert bob_id in await registry.handle(state, "/users")
    assert await registry.handle(state, f"/add {bob_id}") == "Member added to the team!"
    await settle()
    members = await registry.handle(state, "/members")
    assert "alice (owner)" in members
    assert "bob (member)" in members

    image = tmp_path / "shot.png"
    image.write_bytes(b"png")
    emitted: list[str] = []
    reply = await registry.handle(
        state,
        f'/task "Write report" --priority high --deadline 2024-05-01 --image {image}',
        emit=emitted.append,
    )
    assert reply == "Task created!"
    assert emitted and "shot.png" in emitted[0]
    await settle()

    (task,) = state.tasks.tasks
    assert task.title == "Write report"
    assert task.priority.value == "High"
    assert task.image_url is not None

    listing = await registry.handle(state, "/tasks")
    assert "1 total, 1 pending, 0 completed" in listing
    assert "[ ] " + task.id in listing

    assert await registry.handle(state, f"/done {task.id}") == "Task updated!"
    await settle()
    assert "0 pending, 1 completed" in await registry.handle(state, "/ls")

    assert "0 total" in await registry.handle(state, f"/tasks {bob_id}")
    assert "1 total" in await registry.handle(state, "/tasks all")

    confirm = RecordingConfirm(answer=False)
    assert await registry.handle(state, f"/rm {task.id}", confirm=confirm) == "Cancelled."
    assert confirm.questions == ["Are you sure you want to delete this task?"]

    assert await registry.handle(state, f"/rm {task.id}", confirm=RecordingConfirm(answer=True)) == "Task deleted!"
    await settle()
    assert state.tasks.tasks == []
    state.close()


@pytest.mark.asyncio
async def test_task_command_reports_unreadable_image(state: AppState, tmp_path: Path) -> None:
    reply = await registry.handle(state, f"/task Logo --image {tmp_path / 'missing.png'}")
    assert reply.startswith("Cannot read image")


@pytest.mark.asyncio
async def test_command_failures_surface_status(state: AppState) -> None:
    state.start()
    await settle()

    assert await registry.handle(state, "/login nobody@x.io secret1") == "User not found."
    assert await registry.handle(state, "/login") == "Usage: /login <email> <password>"
    assert await registry.handle(state, "/task") == "Enter a task title."
    state.close()


@pytest.mark.asyncio
async def test_tasks_argument_sets_filter(state: AppState) -> None:
    await registry.handle(state, "/tasks u-42")
    assert state.filter_user_id == "u-42"

    await registry.handle(state, "/tasks all")
    assert state.filter_user_id == "all"
    assert state.view().total == 0
