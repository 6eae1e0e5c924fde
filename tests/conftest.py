# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from teamboard.backends.local_auth import LocalIdentityProvider
from teamboard.backends.local_blobs import LocalBlobStore
from teamboard.backends.local_store import LocalDocumentStore
from teamboard.core.state import AppState, build_state

from .fakes import FakeBlobStore, FlakyStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="teamboard-test",
        backend="local",
        data_dir=tmp_path,
        store_db_path=tmp_path / "store.sqlite3",
        auth_db_path=tmp_path / "auth.sqlite3",
        blob_dir=tmp_path / "blobs",
        min_password_length=6,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> LocalDocumentStore:
    return LocalDocumentStore(settings.store_db_path)


@pytest.fixture()
def identity(settings: SimpleNamespace) -> LocalIdentityProvider:
    return LocalIdentityProvider(settings.auth_db_path, min_password_length=settings.min_password_length)


@pytest.fixture()
def flaky(store: LocalDocumentStore) -> FlakyStore:
    return FlakyStore(store)


@pytest.fixture()
def fake_blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    identity: LocalIdentityProvider,
    flaky: FlakyStore,
    fake_blobs: FakeBlobStore,
) -> AppState:
    """
    AppState wired with real SQLite collaborators.

    NOTE: the store is wrapped in FlakyStore (pass-through unless a failure is
    armed) so tests can both inspect writes and inject store errors.
    The state is not started: start() needs the running loop of the test.
    """
    return build_state(settings=settings, identity=identity, store=flaky, blobs=fake_blobs)


@pytest.fixture()
def local_state(
    settings: SimpleNamespace,
    identity: LocalIdentityProvider,
    store: LocalDocumentStore,
) -> AppState:
    """AppState with the real filesystem blob store."""
    return build_state(settings=settings, identity=identity, store=store, blobs=LocalBlobStore(settings.blob_dir))
