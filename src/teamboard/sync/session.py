# src/teamboard/sync/session.py

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..core.errors import ValidationError, friendly_error_message
from ..core.models import USERS, User
from ..core.ports import SERVER_TIMESTAMP, Document, DocumentStore, Identity, IdentityProvider, Unsubscribe
from ..core.status import StatusBoard
from .live import Observable, SubscriptionSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionIdentity:
    uid: str
    email: str
    username: str | None = None  # overlaid once the profile push arrives

    @property
    def display_name(self) -> str:
        return self.username or self.email


class SessionManager(Observable):
    """
    Tracks the signed-in identity and its live profile.

    Listeners receive the SessionIdentity (or None) on every change:
    new uid, username overlay, logout. A None notification is the single
    teardown trigger for everything downstream.
    """

    def __init__(self, identity: IdentityProvider, store: DocumentStore, status: StatusBoard) -> None:
        super().__init__()
        self._identity = identity
        self._store = store
        self._status = status
        self._current: SessionIdentity | None = None
        self._profile = SubscriptionSlot("session.profile")
        self._auth_unsub: Unsubscribe | None = None

    @property
    def current_identity(self) -> SessionIdentity | None:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    def start(self) -> None:
        if self._auth_unsub is None:
            self._auth_unsub = self._identity.on_identity_change(self._on_identity)

    def close(self) -> None:
        if self._auth_unsub is not None:
            self._auth_unsub()
            self._auth_unsub = None
        self._profile.close()

    # ---- identity / profile pushes ----

    def _on_identity(self, identity: Identity | None) -> None:
        if identity is None:
            if self._current is None:
                return
            logger.info("Signed out uid=%s", self._current.uid)
            self._profile.close()
            self._current = None
            self.emit(None)
            return

        prev = self._current
        if prev is not None and prev.uid == identity.uid:
            # Token refresh: keep the profile subscription.
            if prev.email != identity.email:
                self._current = replace(prev, email=identity.email)
                self.emit(self._current)
            return

        logger.info("Signed in uid=%s", identity.uid)
        self._current = SessionIdentity(uid=identity.uid, email=identity.email)
        uid = identity.uid
        self._profile.open(
            lambda cb: self._store.subscribe_document(USERS, uid, cb),
            self._on_profile,
        )
        self.emit(self._current)

    def _on_profile(self, doc: Document | None) -> None:
        cur = self._current
        if doc is None or cur is None or doc.id != cur.uid:
            return
        profile = User.from_doc(doc)
        username = profile.username or None
        if username == cur.username:
            return
        self._current = replace(cur, username=username)
        self.emit(self._current)

    # ---- operations ----

    async def register(self, email: str, password: str, username: str) -> bool:
        email = (email or "").strip()
        username = (username or "").strip()
        try:
            if not email or not password or not username:
                raise ValidationError("Fill in all fields.")

            ident = await self._identity.register(email, password)
            # Not atomic with the identity: a failure here leaves an account without profile.
            await self._store.set(
                USERS,
                ident.uid,
                {
                    "uid": ident.uid,
                    "username": username,
                    "email": email,
                    "createdAt": SERVER_TIMESTAMP,
                    "avatar": None,
                },
            )
        except Exception as e:
            if not isinstance(e, ValidationError):
                logger.warning("Registration failed email=%s: %r", email, e)
            self._status.fail(friendly_error_message(e, action="Registration"))
            return False

        logger.info("Registered uid=%s username=%s", ident.uid, username)
        self._status.succeed("Registration complete!")
        return True

    async def login(self, email: str, password: str) -> bool:
        email = (email or "").strip()
        try:
            if not email or not password:
                raise ValidationError("Enter email and password.")
            await self._identity.login(email, password)
        except Exception as e:
            self._status.fail(friendly_error_message(e, action="Login"))
            return False
        self._status.clear()
        return True

    async def logout(self) -> bool:
        try:
            await self._identity.logout()
        except Exception as e:
            logger.warning("Logout failed: %r", e)
            self._status.fail(friendly_error_message(e, action="Logout"))
            return False
        # The provider's None event also arrives later; tearing down now keeps
        # logout immediate and the second notification becomes a no-op.
        self._on_identity(None)
        return True
