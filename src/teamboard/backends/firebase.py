# src/teamboard/backends/firebase.py

from __future__ import annotations

"""
Firebase-backed collaborators.

- FirestoreDocumentStore: Cloud Firestore with on_snapshot live queries.
- FirebaseIdentityProvider: email/password accounts via the Identity Toolkit
  REST API (the Admin SDK cannot verify passwords).
- FirebaseBlobStore: Firebase Storage (GCS bucket) with download-token URLs.

Snapshot callbacks arrive on SDK threads; they are handed to the event loop
with call_soon_threadsafe. Blocking SDK/HTTP calls run in asyncio.to_thread.
"""

import asyncio
import json
import logging
import os
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

import firebase_admin
import requests
from firebase_admin import credentials, firestore, storage
from google.api_core import exceptions as gexc

from ..core.errors import AuthError, BlobError, FailureKind, NotFoundError, StoreError
from ..core.ports import SERVER_TIMESTAMP, BlobHandle, Document, Identity, Query, Unsubscribe

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{action}?key={key}"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token?key={key}"
DOWNLOAD_URL = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}?alt=media&token={token}"
DOWNLOAD_TOKEN_KEY = "firebaseStorageDownloadTokens"


def init_firebase_app(settings) -> firebase_admin.App:
    """Initialize the default Firebase app once (service account file or ADC)."""
    if firebase_admin._apps:
        return firebase_admin.get_app()

    options: dict[str, Any] = {}
    project_id = getattr(settings, "firebase_project_id", None)
    bucket = getattr(settings, "firebase_storage_bucket", None)
    if project_id:
        options["projectId"] = project_id
    if bucket:
        options["storageBucket"] = bucket

    cred_path = getattr(settings, "firebase_credentials_path", None)
    if cred_path:
        cred = credentials.Certificate(str(cred_path))
    else:
        # On GCP (Cloud Run etc.) the attached service account is used.
        cred = credentials.ApplicationDefault()

    app = firebase_admin.initialize_app(cred, options or None)
    logger.info("Firebase Admin SDK initialized (project=%s bucket=%s)", project_id, bucket)
    return app


def _call_soon_threadsafe(loop: asyncio.AbstractEventLoop, fn: Callable[[Any], None], payload: Any) -> None:
    try:
        loop.call_soon_threadsafe(fn, payload)
    except RuntimeError:
        # Loop already closed (shutdown race).
        logger.debug("Dropped snapshot: event loop closed")


class FirestoreDocumentStore:
    def __init__(self, client: Any | None = None) -> None:
        self._db = client if client is not None else firestore.client()

    @staticmethod
    def _fields(fields: dict[str, Any]) -> dict[str, Any]:
        return {k: (firestore.SERVER_TIMESTAMP if v is SERVER_TIMESTAMP else v) for k, v in fields.items()}

    async def _call(self, what: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except gexc.NotFound as e:
            raise NotFoundError(f"{what}: {e.message}") from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(e.message or str(e)) from e

    async def create(self, collection: str, fields: dict[str, Any]) -> str:
        _, ref = await self._call(f"create {collection}", self._db.collection(collection).add, self._fields(fields))
        return ref.id

    async def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        ref = self._db.collection(collection).document(doc_id)
        await self._call(f"set {collection}/{doc_id}", ref.set, self._fields(fields))

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        ref = self._db.collection(collection).document(doc_id)
        await self._call(f"update {collection}/{doc_id}", ref.update, self._fields(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        ref = self._db.collection(collection).document(doc_id)
        await self._call(f"delete {collection}/{doc_id}", ref.delete)

    @staticmethod
    def _watch_unsubscribe(watch: Any, name: str) -> Unsubscribe:
        done = False

        def _unsubscribe() -> None:
            nonlocal done
            if done:
                return
            done = True
            watch.unsubscribe()
            logger.debug("Firestore listener closed: %s", name)

        return _unsubscribe

    def subscribe(self, query: Query, on_push: Callable[[list[Document]], None]) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        ref: Any = self._db.collection(query.collection)
        if query.order_by:
            direction = firestore.Query.DESCENDING if query.descending else firestore.Query.ASCENDING
            ref = ref.order_by(query.order_by, direction=direction)

        def _on_snapshot(docs, _changes, _read_time) -> None:
            payload = [Document(id=d.id, data=d.to_dict() or {}) for d in docs]
            _call_soon_threadsafe(loop, on_push, payload)

        watch = ref.on_snapshot(_on_snapshot)
        return self._watch_unsubscribe(watch, query.collection)

    def subscribe_document(
            self,
            collection: str,
            doc_id: str,
            on_push: Callable[[Document | None], None],
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        ref = self._db.collection(collection).document(doc_id)

        def _on_snapshot(snapshots, _changes, _read_time) -> None:
            snap = snapshots[0] if snapshots else None
            payload = Document(id=snap.id, data=snap.to_dict() or {}) if snap is not None and snap.exists else None
            _call_soon_threadsafe(loop, on_push, payload)

        watch = ref.on_snapshot(_on_snapshot)
        return self._watch_unsubscribe(watch, f"{collection}/{doc_id}")


# ---- identity ----

_AUTH_ERROR_KINDS: dict[str, FailureKind] = {
    "EMAIL_EXISTS": FailureKind.DUPLICATE_EMAIL,
    "WEAK_PASSWORD": FailureKind.WEAK_PASSWORD,
    "EMAIL_NOT_FOUND": FailureKind.USER_NOT_FOUND,
    "INVALID_PASSWORD": FailureKind.WRONG_PASSWORD,
}


def auth_error_from_payload(payload: Any, status_code: int) -> AuthError:
    """
    Map an Identity Toolkit error body to an AuthError.

    Messages look like "EMAIL_EXISTS" or "WEAK_PASSWORD : Password should be ...".
    """
    message = ""
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            message = str(err.get("message") or "")
    if not message:
        message = f"HTTP {status_code}"
    code = message.split(":", 1)[0].strip()
    return AuthError(message, kind=_AUTH_ERROR_KINDS.get(code, FailureKind.UNKNOWN))


class FirebaseIdentityProvider:
    """
    Email/password auth against Firebase.

    The refresh token is persisted in session.json (gitignored data dir, 0600)
    so a restart reports the previous session and then refreshes it.
    """

    def __init__(self, api_key: str, session_path: str | Path) -> None:
        if not api_key:
            raise ValueError("Firebase web API key is required (TEAMBOARD_FIREBASE_API_KEY)")
        self._api_key = api_key
        self._session_path = Path(session_path)
        self._listeners: list[tuple[Callable[[Identity | None], None], asyncio.AbstractEventLoop]] = []
        self._refresh_token: str | None = None
        self._current: Identity | None = None
        self._refresh_pending = False
        self._refresh_task: asyncio.Task[None] | None = None
        self._load_session()

    # ---- session file ----

    def _load_session(self) -> None:
        if not self._session_path.exists():
            return
        try:
            data = json.loads(self._session_path.read_text("utf-8"))
            uid = str(data["uid"])
            email = str(data["email"])
            token = str(data["refresh_token"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable session file %s: %r", self._session_path, e)
            return
        self._current = Identity(uid=uid, email=email)
        self._refresh_token = token
        self._refresh_pending = True

    def _save_session(self) -> None:
        if self._current is None or not self._refresh_token:
            try:
                self._session_path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Session file removal failed", exc_info=True)
            return
        self._session_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._session_path.with_suffix(".tmp")
        tmp.write_text(
            json.dumps(
                {"uid": self._current.uid, "email": self._current.email, "refresh_token": self._refresh_token},
                ensure_ascii=False,
            ),
            "utf-8",
        )
        os.replace(tmp, self._session_path)
        try:
            os.chmod(self._session_path, 0o600)
        except OSError:
            pass

    # ---- HTTP ----

    def _post_json(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = requests.post(url, json=body)
        return self._parse(resp)

    def _post_form(self, url: str, body: dict[str, str]) -> dict[str, Any]:
        resp = requests.post(url, data=body)
        return self._parse(resp)

    @staticmethod
    def _parse(resp: requests.Response) -> dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if not resp.ok:
            raise auth_error_from_payload(payload, resp.status_code)
        return payload if isinstance(payload, dict) else {}

    async def _account_call(self, action: str, email: str, password: str) -> Identity:
        url = IDENTITY_TOOLKIT_URL.format(action=action, key=self._api_key)
        body = {"email": email, "password": password, "returnSecureToken": True}
        try:
            payload = await asyncio.to_thread(self._post_json, url, body)
        except requests.RequestException as e:
            raise AuthError(str(e)) from e
        identity = Identity(uid=str(payload.get("localId", "")), email=str(payload.get("email", email)))
        self._refresh_token = payload.get("refreshToken")
        self._set_current(identity)
        return identity

    # ---- listeners ----

    def _set_current(self, identity: Identity | None) -> None:
        self._current = identity
        if identity is None:
            self._refresh_token = None
        self._save_session()
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
    def _on_refresh_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session refresh failed: %r", exc, exc_info=exc)

    async def _refresh_session(self) -> None:
        token = self._refresh_token
        if not token:
            return
        url = SECURE_TOKEN_URL.format(key=self._api_key)
        try:
            payload = await asyncio.to_thread(
                self._post_form, url, {"grant_type": "refresh_token", "refresh_token": token}
            )
        except (AuthError, requests.RequestException) as e:
            logger.warning("Stored session could not be refreshed; signing out: %r", e)
            self._set_current(None)
            return
        self._refresh_token = payload.get("refresh_token") or token
        cur = self._current
        if cur is not None:
            # Token refresh: same identity delivered again.
            self._set_current(Identity(uid=str(payload.get("user_id") or cur.uid), email=cur.email))

    # ---- IdentityProvider port ----

    async def register(self, email: str, password: str) -> Identity:
        return await self._account_call("signUp", email, password)

    async def login(self, email: str, password: str) -> Identity:
        return await self._account_call("signInWithPassword", email, password)

    async def logout(self) -> None:
        self._set_current(None)

    def on_identity_change(self, callback: Callable[[Identity | None], None]) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        entry = (callback, loop)
        self._listeners.append(entry)
        loop.call_soon(self._deliver, callback, self._current)
        if self._refresh_pending:
            self._refresh_pending = False
            self._refresh_task = loop.create_task(self._refresh_session())
            self._refresh_task.add_done_callback(self._on_refresh_done)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)
            task = self._refresh_task
            if task is not None and not self._listeners:
                self._refresh_task = None
                if not task.done():
                    task.cancel()

        return _unsubscribe


# ---- blobs ----


class FirebaseBlobStore:
    def __init__(self, bucket: Any | None = None) -> None:
        self._bucket = bucket if bucket is not None else storage.bucket()

    def _upload(self, path: str, data: bytes, content_type: str) -> None:
        blob = self._bucket.blob(path)
        blob.metadata = {DOWNLOAD_TOKEN_KEY: uuid.uuid4().hex}
        blob.upload_from_string(data, content_type=content_type)

    async def upload(self, path: str, data: bytes, *, content_type: str | None = None) -> BlobHandle:
        try:
            await asyncio.to_thread(self._upload, path, data, content_type or "application/octet-stream")
        except gexc.GoogleAPICallError as e:
            raise BlobError(e.message or str(e)) from e
        logger.info("Uploaded %s to bucket %s (%d bytes)", path, self._bucket.name, len(data))
        return BlobHandle(path=path)

    async def retrieval_url(self, handle: BlobHandle) -> str:
        try:
            blob = await asyncio.to_thread(self._bucket.get_blob, handle.path)
        except gexc.GoogleAPICallError as e:
            raise BlobError(e.message or str(e)) from e
        if blob is None:
            raise NotFoundError(f"Blob not found: {handle.path}")
        token = str((blob.metadata or {}).get(DOWNLOAD_TOKEN_KEY) or "").split(",")[0]
        if not token:
            raise BlobError(f"Blob {handle.path} has no download token")
        return DOWNLOAD_URL.format(bucket=self._bucket.name, path=quote(handle.path, safe=""), token=token)
