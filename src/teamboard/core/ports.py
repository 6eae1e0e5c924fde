# src/teamboard/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync engine.

The engine depends on Protocols instead of concrete backends.
This keeps the document store / identity provider / blob store swappable
(local SQLite vs Firebase) and makes testing easier.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Awaitable, Protocol

Unsubscribe = Callable[[], None]
# Every subscribe-style call returns one of these; calling it twice is a no-op.


class _ServerTimestamp:
    """Sentinel: ask the store to fill the field with its own monotonic clock."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()


@dataclass(frozen=True, slots=True)
class Document:
    """One document of a push: store-assigned id + raw field map."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Query:
    """A live query over one collection, optionally ordered by a field."""

    collection: str
    order_by: str | None = None
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Identity:
    uid: str
    email: str


@dataclass(frozen=True, slots=True)
class BlobHandle:
    path: str


class IdentityProvider(Protocol):
    """Auth provider. Failures are raised as errors.AuthError."""

    def register(self, email: str, password: str) -> Awaitable[Identity]: ...
    def login(self, email: str, password: str) -> Awaitable[Identity]: ...
    def logout(self) -> Awaitable[None]: ...

    def on_identity_change(self, callback: Callable[[Identity | None], None]) -> Unsubscribe:
        """
        Register a listener for login/logout/refresh events.

        The current identity (possibly None) is delivered once right after
        registration, the same way a persisted session shows up at app start.
        """
        ...


class DocumentStore(Protocol):
    """
    Hierarchical document store with live queries.

    Collections are addressed by slash paths ("teams/<id>/tasks").
    Subscriptions push the FULL current result set on every change.
    Failures are raised as errors.StoreError.
    """

    def create(self, collection: str, fields: dict[str, Any]) -> Awaitable[str]: ...
    def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> Awaitable[None]: ...
    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> Awaitable[None]: ...
    def delete(self, collection: str, doc_id: str) -> Awaitable[None]: ...

    def subscribe(
            self,
            query: Query,
            on_push: Callable[[list[Document]], None],
    ) -> Unsubscribe: ...

    def subscribe_document(
            self,
            collection: str,
            doc_id: str,
            on_push: Callable[[Document | None], None],
    ) -> Unsubscribe: ...


class BlobStore(Protocol):
    """Blob storage for task images. Failures are raised as errors.BlobError."""

    def upload(
            self,
            path: str,
            data: bytes,
            *,
            content_type: str | None = None,
    ) -> Awaitable[BlobHandle]: ...

    def retrieval_url(self, handle: BlobHandle) -> Awaitable[str]: ...
