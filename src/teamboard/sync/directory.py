# src/teamboard/sync/directory.py

from __future__ import annotations

import logging

from ..core.models import USERS, User
from ..core.ports import Document, DocumentStore, Query, Unsubscribe
from .live import Observable, SubscriptionSlot
from .session import SessionIdentity, SessionManager

logger = logging.getLogger(__name__)


class DirectoryCache(Observable):
    """Live list of registered users minus the signed-in one (member picker source)."""

    def __init__(self, store: DocumentStore, session: SessionManager) -> None:
        super().__init__()
        self._store = store
        self._session = session
        self._sub = SubscriptionSlot("directory.users")
        self._all: list[User] = []
        self._users: list[User] = []
        self._session_unsub: Unsubscribe | None = None

    @property
    def users(self) -> list[User]:
        return list(self._users)

    def find(self, user_id: str) -> User | None:
        for u in self._users:
            if u.id == user_id:
                return u
        return None

    def start(self) -> None:
        if self._session_unsub is None:
            self._session_unsub = self._session.add_listener(self._on_session)

    def close(self) -> None:
        if self._session_unsub is not None:
            self._session_unsub()
            self._session_unsub = None
        self._sub.close()

    def _on_session(self, identity: SessionIdentity | None) -> None:
        if identity is None:
            self._sub.close()
            self._all = []
        elif not self._sub.active:
            self._sub.open(lambda cb: self._store.subscribe(Query(USERS), cb), self._on_push)
        self._refilter()

    def _on_push(self, docs: list[Document]) -> None:
        self._all = [User.from_doc(d) for d in docs]
        self._refilter()

    def _refilter(self) -> None:
        me = self._session.current_identity
        my_id = me.uid if me is not None else None
        self._users = [u for u in self._all if u.id != my_id]
        logger.debug("Directory: %d users (self excluded: %s)", len(self._users), my_id)
        self.emit(self.users)
