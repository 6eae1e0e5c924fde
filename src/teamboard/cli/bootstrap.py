# src/teamboard/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the backend (local SQLite/filesystem or Firebase),
- wires the collaborators into AppState.
"""

from __future__ import annotations

import logging

from ..backends.local_auth import LocalIdentityProvider
from ..backends.local_blobs import LocalBlobStore
from ..backends.local_store import LocalDocumentStore
from ..config import get_settings
from ..core.state import AppState, build_state

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.store_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.auth_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.blob_dir.mkdir(parents=True, exist_ok=True)


def _build_firebase_state(settings) -> AppState:
    # Imported lazily: the Firebase SDK is heavy and only needed for this backend.
    from ..backends.firebase import (
        FirebaseBlobStore,
        FirebaseIdentityProvider,
        FirestoreDocumentStore,
        init_firebase_app,
    )

    init_firebase_app(settings)
    return build_state(
        settings=settings,
        identity=FirebaseIdentityProvider(settings.firebase_api_key or "", settings.firebase_session_path),
        store=FirestoreDocumentStore(),
        blobs=FirebaseBlobStore(),
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if getattr(settings, "backend", "local") == "firebase":
        logger.info("Using Firebase backend (project=%s)", settings.firebase_project_id)
        return _build_firebase_state(settings)

    logger.info("Using local backend at %s", settings.data_dir)
    return build_state(
        settings=settings,
        identity=LocalIdentityProvider(
            settings.auth_db_path,
            min_password_length=getattr(settings, "min_password_length", 6),
        ),
        store=LocalDocumentStore(settings.store_db_path),
        blobs=LocalBlobStore(settings.blob_dir),
    )
