# src/teamboard/backends/local_auth.py

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets
import sqlite3
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from ..core.errors import AuthError, FailureKind
from ..core.ports import Identity, Unsubscribe

logger = logging.getLogger(__name__)

_PBKDF2_ROUNDS = 120_000


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS)


class LocalIdentityProvider:
    """
    Email/password accounts in SQLite, for local runs and tests.

    The signed-in uid is persisted in the same database, so a restart
    reports the previous session on the first identity-change delivery.
    """

    def __init__(self, db_path: str | Path = "auth.sqlite3", *, min_password_length: int = 6) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._min_password_length = max(1, int(min_password_length))
        self._listeners: list[tuple[Callable[[Identity | None], None], asyncio.AbstractEventLoop]] = []
        self._ensure_schema()
        self._current = self._load_session()
        logger.info("LocalIdentityProvider ready db=%s session=%s", self._db_path, self._current)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    uid TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    salt BLOB NOT NULL,
                    pw_hash BLOB NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS session (k TEXT PRIMARY KEY, uid TEXT NOT NULL)"
            )
            conn.commit()
        finally:
            conn.close()

    def _load_session(self) -> Identity | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT a.uid, a.email FROM session s JOIN accounts a ON a.uid = s.uid WHERE s.k = 'current'"
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return Identity(uid=str(row["uid"]), email=str(row["email"]))

    def _save_session(self, identity: Identity | None) -> None:
        conn = self._get_conn()
        try:
            if identity is None:
                conn.execute("DELETE FROM session WHERE k = 'current'")
            else:
                conn.execute(
                    "INSERT OR REPLACE INTO session(k, uid) VALUES ('current', ?)",
                    (identity.uid,),
                )
            conn.commit()
        finally:
            conn.close()

    def _set_current(self, identity: Identity | None) -> None:
        self._current = identity
        self._save_session(identity)
        for cb, loop in list(self._listeners):
            loop.call_soon(self._deliver, cb, identity)

    def _deliver(self, cb: Callable[[Identity | None], None], identity: Identity | None) -> None:
        if not any(c is cb for c, _ in self._listeners):
            return
        try:
            cb(identity)
        except Exception:
            logger.exception("Identity listener raised; continuing")

    @staticmethod
    def _normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    # ---- IdentityProvider port ----

    @property
    def current(self) -> Identity | None:
        return self._current

    async def register(self, email: str, password: str) -> Identity:
        email_n = self._normalize_email(email)
        if not email_n or "@" not in email_n:
            raise AuthError("Invalid email address.", kind=FailureKind.UNKNOWN)
        if len(password or "") < self._min_password_length:
            raise AuthError(
                f"Password should be at least {self._min_password_length} characters.",
                kind=FailureKind.WEAK_PASSWORD,
            )

        salt = secrets.token_bytes(16)
        uid = uuid.uuid4().hex[:28]
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO accounts(uid, email, salt, pw_hash, created_at) VALUES (?, ?, ?, ?, ?)",
                (uid, email_n, salt, _hash_password(password, salt), time.time()),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise AuthError("The email address is already in use.", kind=FailureKind.DUPLICATE_EMAIL) from e
        finally:
            conn.close()

        identity = Identity(uid=uid, email=email_n)
        logger.info("Account created uid=%s", uid)
        # Registration signs the new account in.
        self._set_current(identity)
        return identity

    async def login(self, email: str, password: str) -> Identity:
        email_n = self._normalize_email(email)
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT uid, email, salt, pw_hash FROM accounts WHERE email = ?",
                (email_n,),
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            raise AuthError("There is no user record for this email.", kind=FailureKind.USER_NOT_FOUND)
        if not hmac.compare_digest(_hash_password(password or "", bytes(row["salt"])), bytes(row["pw_hash"])):
            raise AuthError("The password is invalid.", kind=FailureKind.WRONG_PASSWORD)

        identity = Identity(uid=str(row["uid"]), email=str(row["email"]))
        self._set_current(identity)
        return identity

    async def logout(self) -> None:
        if self._current is not None:
            logger.info("Signing out uid=%s", self._current.uid)
        self._set_current(None)

    def on_identity_change(self, callback: Callable[[Identity | None], None]) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        entry = (callback, loop)
        self._listeners.append(entry)
        loop.call_soon(self._deliver, callback, self._current)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe
