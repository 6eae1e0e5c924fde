# tests/test_projector.py

from __future__ import annotations

from teamboard.core.models import Priority, Task, TaskStatus
from teamboard.sync.projector import ALL_USERS, project


def _task(tid: str, assigned_to: str, status: TaskStatus = TaskStatus.PENDING) -> Task:
    return Task(
        id=tid,
        title=f"task {tid}",
        description="",
        deadline=None,
        priority=Priority.MEDIUM,
        assigned_to=assigned_to,
        assigned_to_email=f"{assigned_to}@x.io",
        status=status,
        image_url=None,
        created_by=assigned_to,
    )


def test_all_filter_counts_every_task():
    tasks = [
        _task("1", "alice"),
        _task("2", "bob", TaskStatus.COMPLETED),
        _task("3", "alice", TaskStatus.COMPLETED),
    ]

    view = project(tasks, ALL_USERS)

    assert [t.id for t in view.filtered] == ["1", "2", "3"]
    assert view.total == 3
    assert view.pending_count == 1
    assert view.completed_count == 2


def test_user_filter_counts_only_filtered_set():
    tasks = [
        _task("1", "alice"),
        _task("2", "bob", TaskStatus.COMPLETED),
        _task("3", "alice", TaskStatus.COMPLETED),
        _task("4", "alice"),
    ]

    view = project(tasks, "alice")

    assert [t.id for t in view.filtered] == ["1", "3", "4"]
    assert (view.total, view.pending_count, view.completed_count) == (3, 2, 1)


def test_unknown_user_yields_empty_view():
    view = project([_task("1", "alice")], "nobody")
    assert view.filtered == []
    assert (view.total, view.pending_count, view.completed_count) == (0, 0, 0)


def test_empty_input():
    view = project([])
    assert view.total == 0
    assert view.pending_count + view.completed_count == view.total


def test_counts_always_add_up():
    tasks = [_task(str(i), "u", TaskStatus.COMPLETED if i % 3 == 0 else TaskStatus.PENDING) for i in range(10)]
    view = project(tasks)
    assert view.pending_count + view.completed_count == view.total == 10
    assert view.completed_count == 4
