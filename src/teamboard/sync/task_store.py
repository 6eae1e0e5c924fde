# src/teamboard/sync/task_store.py

from __future__ import annotations

import logging

from ..core.models import Task, Team, tasks_path
from ..core.ports import Document, DocumentStore, Query, Unsubscribe
from .live import Observable, SubscriptionSlot
from .team_context import TeamContext

logger = logging.getLogger(__name__)


class TaskStore(Observable):
    """
    Live task list of the active team, newest first.

    Ordering comes from the store query (createdAt desc), never from a
    client-side sort. Every push replaces the whole list.
    """

    def __init__(self, store: DocumentStore, team: TeamContext) -> None:
        super().__init__()
        self._store = store
        self._team = team
        self._sub = SubscriptionSlot("tasks")
        self._tasks: list[Task] = []
        self._team_unsub: Unsubscribe | None = None

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def start(self) -> None:
        if self._team_unsub is None:
            self._team_unsub = self._team.add_listener(self._on_team)
            if self._team.active_team is not None:
                self._on_team(self._team.active_team)

    def close(self) -> None:
        if self._team_unsub is not None:
            self._team_unsub()
            self._team_unsub = None
        self.clear()

    def clear(self) -> None:
        self._sub.close()
        if self._tasks:
            self._tasks = []
            self.emit(self.tasks)

    def _on_team(self, team: Team | None) -> None:
        self.clear()
        if team is None:
            return
        query = Query(tasks_path(team.id), order_by="createdAt", descending=True)
        self._sub.open(lambda cb: self._store.subscribe(query, cb), self._on_push)

    def _on_push(self, docs: list[Document]) -> None:
        self._tasks = [Task.from_doc(d) for d in docs]
        logger.debug("Tasks push: %d tasks", len(self._tasks))
        self.emit(self.tasks)
