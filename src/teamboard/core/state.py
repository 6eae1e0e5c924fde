# src/teamboard/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..sync.directory import DirectoryCache
from ..sync.mutations import MutationCoordinator
from ..sync.projector import ALL_USERS, TaskView, project
from ..sync.session import SessionManager
from ..sync.task_store import TaskStore
from ..sync.team_context import TeamContext
from .ports import BlobStore, DocumentStore, IdentityProvider
from .status import StatusBoard


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    identity: IdentityProvider
    store: DocumentStore
    blobs: BlobStore

    status: StatusBoard
    session: SessionManager
    directory: DirectoryCache
    team: TeamContext
    tasks: TaskStore
    mutations: MutationCoordinator

    filter_user_id: str = ALL_USERS
    started: bool = field(default=False)

    def start(self) -> None:
        """Open every long-lived subscription. Must run inside the event loop."""
        if self.started:
            return
        # Dependents first, so they see the very first identity event.
        self.directory.start()
        self.team.start()
        self.tasks.start()
        self.session.start()
        self.started = True

    def close(self) -> None:
        self.session.close()
        self.tasks.close()
        self.team.close()
        self.directory.close()
        self.started = False

    def view(self) -> TaskView:
        return project(self.tasks.tasks, self.filter_user_id)


def build_state(
        *,
        settings: Any,
        identity: IdentityProvider,
        store: DocumentStore,
        blobs: BlobStore,
) -> AppState:
    """Wire the sync components around the given collaborators (not started)."""
    status = StatusBoard()
    session = SessionManager(identity, store, status)
    directory = DirectoryCache(store, session)
    team = TeamContext(store, session, directory)
    tasks = TaskStore(store, team)
    mutations = MutationCoordinator(store, blobs, session, team, status)
    return AppState(
        settings=settings,
        identity=identity,
        store=store,
        blobs=blobs,
        status=status,
        session=session,
        directory=directory,
        team=team,
        tasks=tasks,
        mutations=mutations,
    )
