# src/teamboard/sync/projector.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..core.models import Task, TaskStatus

ALL_USERS = "all"


@dataclass(frozen=True, slots=True)
class TaskView:
    filtered: list[Task]
    total: int
    pending_count: int
    completed_count: int


def project(tasks: Iterable[Task], filter_user_id: str = ALL_USERS) -> TaskView:
    """
    Filter tasks by assignee ("all" = no filter) and count by status.

    Counts are over the filtered set. Order is preserved.
    """
    if filter_user_id == ALL_USERS:
        filtered = list(tasks)
    else:
        filtered = [t for t in tasks if t.assigned_to == filter_user_id]

    completed = sum(1 for t in filtered if t.status is TaskStatus.COMPLETED)
    return TaskView(
        filtered=filtered,
        total=len(filtered),
        pending_count=len(filtered) - completed,
        completed_count=completed,
    )
