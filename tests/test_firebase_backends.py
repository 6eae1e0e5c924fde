# tests/test_firebase_backends.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from types import SimpleNamespace
from typing import Any

import pytest
from google.api_core import exceptions as gexc

from teamboard.backends import firebase
from teamboard.backends.firebase import FirebaseBlobStore, FirebaseIdentityProvider, FirestoreDocumentStore
from teamboard.core.errors import AuthError, FailureKind, NotFoundError, StoreError
from teamboard.core.ports import SERVER_TIMESTAMP, BlobHandle, Query

from .fakes import settle, wait_for


class _Watch:
    def __init__(self) -> None:
        self.unsubscribed = 0

    def unsubscribe(self) -> None:
        self.unsubscribed += 1


class _Ref:
    """Collection/document/query reference double recording calls."""

    def __init__(self, client: "_Client", path: str) -> None:
        self.client = client
        self.path = path
        self.watch = _Watch()
        self.snapshot_cb = None

    def collection(self, name: str) -> "_Ref":
        return _Ref(self.client, f"{self.path}/{name}")

    def document(self, doc_id: str) -> "_Ref":
        return _Ref(self.client, f"{self.path}/{doc_id}")

    def order_by(self, field: str, direction: str) -> "_Ref":
        self.client.calls.append(("order_by", self.path, field, direction))
        return self

    def add(self, fields: dict[str, Any]):
        self.client.calls.append(("add", self.path, fields))
        return None, SimpleNamespace(id="new-id")

    def set(self, fields: dict[str, Any]) -> None:
        self.client.calls.append(("set", self.path, fields))

    def update(self, fields: dict[str, Any]) -> None:
        raise self.client.update_error or AssertionError("unexpected update")

    def delete(self) -> None:
        self.client.calls.append(("delete", self.path))

    def on_snapshot(self, cb):
        self.snapshot_cb = cb
        self.client.refs.append(self)
        return self.watch


class _Client:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.refs: list[_Ref] = []
        self.update_error: Exception | None = None

    def collection(self, name: str) -> _Ref:
        return _Ref(self, name)


def _snap(doc_id: str, data: dict[str, Any] | None):
    return SimpleNamespace(id=doc_id, exists=data is not None, to_dict=lambda: data)


@pytest.mark.asyncio
async def test_firestore_writes_translate_server_timestamp() -> None:
    client = _Client()
    store = FirestoreDocumentStore(client)

    doc_id = await store.create("teams", {"name": "Core", "createdAt": SERVER_TIMESTAMP})
    await store.set("users", "u1", {"username": "alice"})

    assert doc_id == "new-id"
    (op, path, fields) = client.calls[0]
    assert (op, path) == ("add", "teams")
    assert fields["createdAt"] is firebase.firestore.SERVER_TIMESTAMP
    assert client.calls[1] == ("set", "users/u1", {"username": "alice"})


@pytest.mark.asyncio
async def test_firestore_errors_are_mapped() -> None:
    client = _Client()
    store = FirestoreDocumentStore(client)

    client.update_error = gexc.NotFound("No document to update")
    with pytest.raises(NotFoundError):
        await store.update("teams/t1/tasks", "gone", {"status": "completed"})

    client.update_error = gexc.PermissionDenied("Missing or insufficient permissions.")
    with pytest.raises(StoreError) as exc:
        await store.update("teams/t1/tasks", "x", {"status": "completed"})
    assert "insufficient permissions" in exc.value.detail


@pytest.mark.asyncio
async def test_snapshot_from_sdk_thread_is_delivered_on_loop() -> None:
    client = _Client()
    store = FirestoreDocumentStore(client)
    pushes: list[list[str]] = []

    unsub = store.subscribe(
        Query("teams/t1/tasks", order_by="createdAt", descending=True),
        lambda docs: pushes.append([d.id for d in docs]),
    )
    (ref,) = client.refs
    assert client.calls == [("order_by", "teams/t1/tasks", "createdAt", firebase.firestore.Query.DESCENDING)]

    await asyncio.to_thread(ref.snapshot_cb, [_snap("b", {}), _snap("a", {})], [], None)
    await settle()
    assert pushes == [["b", "a"]]

    unsub()
    unsub()
    assert ref.watch.unsubscribed == 1


@pytest.mark.asyncio
async def test_document_snapshot_of_missing_doc_is_none() -> None:
    client = _Client()
    store = FirestoreDocumentStore(client)
    pushes: list[object] = []

    store.subscribe_document("users", "u1", pushes.append)
    (ref,) = client.refs

    await asyncio.to_thread(ref.snapshot_cb, [_snap("u1", None)], [], None)
    await asyncio.to_thread(ref.snapshot_cb, [_snap("u1", {"username": "alice"})], [], None)
    await settle()

    assert pushes[0] is None
    assert pushes[1].data == {"username": "alice"}


class _Blob:
    def __init__(self, name: str) -> None:
        self.name = name
        self.metadata: dict[str, str] | None = None
        self.data: bytes | None = None
        self.content_type: str | None = None

    def upload_from_string(self, data: bytes, content_type: str) -> None:
        self.data = data
        self.content_type = content_type


class _Bucket:
    name = "demo.appspot.com"

    def __init__(self) -> None:
        self.blobs: dict[str, _Blob] = {}

    def blob(self, path: str) -> _Blob:
        return self.blobs.setdefault(path, _Blob(path))

    def get_blob(self, path: str) -> _Blob | None:
        return self.blobs.get(path)


@pytest.mark.asyncio
async def test_blob_upload_yields_token_download_url() -> None:
    bucket = _Bucket()
    blobs = FirebaseBlobStore(bucket)

    handle = await blobs.upload("tasks/1_a b.png", b"png", content_type="image/png")
    url = await blobs.retrieval_url(handle)

    blob = bucket.blobs["tasks/1_a b.png"]
    token = blob.metadata[firebase.DOWNLOAD_TOKEN_KEY]
    assert blob.content_type == "image/png"
    assert url == (
        "https://firebasestorage.googleapis.com/v0/b/demo.appspot.com/o/"
        f"tasks%2F1_a%20b.png?alt=media&token={token}"
    )

    with pytest.raises(NotFoundError):
        await blobs.retrieval_url(BlobHandle(path="tasks/missing.png"))


class _Resp:
    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self) -> dict[str, Any]:
        return self._payload


@pytest.mark.asyncio
async def test_identity_sign_up_persists_session(tmp_path, monkeypatch) -> None:
    posted: list[str] = []

    def fake_post(url, json=None, data=None):
        posted.append(url)
        return _Resp(200, {"localId": "uid-1", "email": "a@x.io", "refreshToken": "rt-1"})

    monkeypatch.setattr(firebase.requests, "post", fake_post)
    session_path = tmp_path / "session.json"
    provider = FirebaseIdentityProvider("key-1", session_path)

    ident = await provider.register("a@x.io", "secret1")

    assert (ident.uid, ident.email) == ("uid-1", "a@x.io")
    assert "accounts:signUp?key=key-1" in posted[0]
    assert json.loads(session_path.read_text("utf-8")) == {
        "uid": "uid-1",
        "email": "a@x.io",
        "refresh_token": "rt-1",
    }

    await provider.logout()
    assert not session_path.exists()


@pytest.mark.asyncio
async def test_identity_errors_carry_kinds(tmp_path, monkeypatch) -> None:
    def fake_post(url, json=None, data=None):
        return _Resp(400, {"error": {"code": 400, "message": "INVALID_PASSWORD"}})

    monkeypatch.setattr(firebase.requests, "post", fake_post)
    provider = FirebaseIdentityProvider("key-1", tmp_path / "session.json")

    with pytest.raises(AuthError) as exc:
        await provider.login("a@x.io", "nope-nope")
    assert exc.value.kind is FailureKind.WRONG_PASSWORD


@pytest.mark.asyncio
async def test_stored_session_is_reported_then_refreshed(tmp_path, monkeypatch) -> None:
    session_path = tmp_path / "session.json"
    session_path.write_text(json.dumps({"uid": "uid-1", "email": "a@x.io", "refresh_token": "rt-1"}), "utf-8")

    def fake_post(url, json=None, data=None):
        assert data == {"grant_type": "refresh_token", "refresh_token": "rt-1"}
        return _Resp(200, {"refresh_token": "rt-2", "user_id": "uid-1"})

    monkeypatch.setattr(firebase.requests, "post", fake_post)
    provider = FirebaseIdentityProvider("key-1", session_path)

    seen: list[object] = []
    unsub = provider.on_identity_change(seen.append)
    await wait_for(lambda: len(seen) >= 2)

    assert [getattr(i, "uid", None) for i in seen] == ["uid-1", "uid-1"]
    assert json.loads(session_path.read_text("utf-8"))["refresh_token"] == "rt-2"
    unsub()


@pytest.mark.asyncio
async def test_rejected_refresh_signs_out(tmp_path, monkeypatch) -> None:
    session_path = tmp_path / "session.json"
    session_path.write_text(json.dumps({"uid": "uid-1", "email": "a@x.io", "refresh_token": "rt-1"}), "utf-8")

    def fake_post(url, json=None, data=None):
        return _Resp(400, {"error": {"code": 400, "message": "TOKEN_EXPIRED"}})

    monkeypatch.setattr(firebase.requests, "post", fake_post)
    provider = FirebaseIdentityProvider("key-1", session_path)

    seen: list[object] = []
    provider.on_identity_change(seen.append)
    await wait_for(lambda: len(seen) >= 2)

    assert seen[-1] is None
    assert not session_path.exists()


@pytest.mark.asyncio
async def test_refresh_failure_outside_http_is_logged(tmp_path, monkeypatch, caplog) -> None:
    session_path = tmp_path / "session.json"
    session_path.write_text(json.dumps({"uid": "uid-1", "email": "a@x.io", "refresh_token": "rt-1"}), "utf-8")

    def fake_post(url, json=None, data=None):
        return _Resp(200, {"refresh_token": "rt-2", "user_id": "uid-1"})

    def broken_save() -> None:
        raise OSError("read-only file system")

    monkeypatch.setattr(firebase.requests, "post", fake_post)
    provider = FirebaseIdentityProvider("key-1", session_path)
    monkeypatch.setattr(provider, "_save_session", broken_save)

    with caplog.at_level(logging.ERROR, logger="teamboard.backends.firebase"):
        unsub = provider.on_identity_change(lambda _identity: None)
        task = provider._refresh_task
        assert task is not None
        await wait_for(task.done)
        await settle()

    assert "Session refresh failed" in caplog.text
    assert "read-only file system" in caplog.text
    unsub()


@pytest.mark.asyncio
async def test_last_unsubscribe_cancels_pending_refresh(tmp_path, monkeypatch) -> None:
    session_path = tmp_path / "session.json"
    session_path.write_text(json.dumps({"uid": "uid-1", "email": "a@x.io", "refresh_token": "rt-1"}), "utf-8")

    def fake_post(url, json=None, data=None):
        return _Resp(200, {"refresh_token": "rt-2", "user_id": "uid-1"})

    monkeypatch.setattr(firebase.requests, "post", fake_post)
    provider = FirebaseIdentityProvider("key-1", session_path)

    unsub = provider.on_identity_change(lambda _identity: None)
    task = provider._refresh_task
    unsub()

    with contextlib.suppress(asyncio.CancelledError):
        await task
    assert task.cancelled()
    assert provider._refresh_task is None
