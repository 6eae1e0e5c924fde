# src/teamboard/backends/local_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.errors import NotFoundError, StoreError
from ..core.ports import SERVER_TIMESTAMP, Document, Query, Unsubscribe

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class _Listener:
    collection: str
    doc_id: str | None  # None -> collection query
    query: Query | None
    callback: Callable[[Any], None]
    loop: asyncio.AbstractEventLoop
    active: bool = True


class LocalDocumentStore:
    """
    SQLite-backed document store with live queries.

    Documents are JSON blobs keyed by (collection path, id). Live queries are
    in-process: after every write the affected result sets are recomputed and
    pushed to their listeners with loop.call_soon, so delivery is asynchronous,
    ordered per subscription, and carries the state as of that write.

    Thread-safety:
    - each method opens its own SQLite connection
    - listeners must be registered from a running event loop
    """

    def __init__(self, db_path: str | Path = "store.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: list[_Listener] = []
        self._last_ts = 0.0
        self._ensure_schema()
        try:
            total = self.count_documents()
        except Exception:
            total = -1
        logger.info("LocalDocumentStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        for lst in self._listeners:
            lst.active = False
        self._listeners.clear()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    data TEXT NOT NULL DEFAULT '{}',
                    PRIMARY KEY (collection, id)
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection, seq)")
            conn.commit()
        finally:
            conn.close()

    def _server_now(self) -> float:
        # Monotonic even if the wall clock steps back.
        now = max(time.time(), self._last_ts + 1e-6)
        self._last_ts = now
        return now

    def _resolve(self, fields: dict[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for k, v in fields.items():
            out[k] = self._server_now() if v is SERVER_TIMESTAMP else v
        return out

    @staticmethod
    def _dumps(data: dict[str, Any]) -> str:
        try:
            return json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Document is not JSON-serializable: {e}") from e

    @staticmethod
    def _loads(raw: str | None) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            val = json.loads(raw)
            return val if isinstance(val, dict) else {}
        except ValueError:
            return {}

    def _read_doc(self, collection: str, doc_id: str) -> Document | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return Document(id=str(row["id"]), data=self._loads(row["data"]))

    def _run_query(self, query: Query) -> list[Document]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT id, seq, data FROM documents WHERE collection = ? ORDER BY seq",
                (query.collection,),
            ).fetchall()
        finally:
            conn.close()

        docs = [(int(r["seq"]), Document(id=str(r["id"]), data=self._loads(r["data"]))) for r in rows]
        if query.order_by:
            field = query.order_by
            # Like Firestore, documents without the ordered field are not part of the result.
            docs = [(seq, d) for seq, d in docs if d.data.get(field) is not None]
            docs.sort(key=lambda p: (p[1].data[field], p[0]), reverse=query.descending)
        return [d for _, d in docs]

    def _next_seq(self, conn: sqlite3.Connection) -> int:
        (n,) = conn.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM documents").fetchone()
        return int(n)

    # ---- push delivery ----

    def _notify(self, collection: str, doc_id: str) -> None:
        for lst in list(self._listeners):
            if not lst.active or lst.collection != collection:
                continue
            if lst.doc_id is None and lst.query is not None:
                self._schedule(lst, self._run_query(lst.query))
            elif lst.doc_id == doc_id:
                self._schedule(lst, self._read_doc(collection, doc_id))

    @staticmethod
    def _schedule(lst: _Listener, payload: Any) -> None:
        def _deliver() -> None:
            if not lst.active:
                return
            try:
                lst.callback(payload)
            except Exception:
                logger.exception("Listener on %s raised; continuing", lst.collection)

        lst.loop.call_soon(_deliver)

    def _add_listener(self, lst: _Listener, initial: Any) -> Unsubscribe:
        self._listeners.append(lst)
        self._schedule(lst, initial)

        def _unsubscribe() -> None:
            lst.active = False
            if lst in self._listeners:
                self._listeners.remove(lst)

        return _unsubscribe

    def active_listener_count(self) -> int:
        return sum(1 for lst in self._listeners if lst.active)

    # ---- public API (DocumentStore port) ----

    def count_documents(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM documents").fetchone()
            return int(n)
        finally:
            conn.close()

    async def create(self, collection: str, fields: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        data = self._dumps(self._resolve(fields))
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO documents(collection, id, seq, data) VALUES (?, ?, ?, ?)",
                (collection, doc_id, self._next_seq(conn), data),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()
        logger.debug("create %s/%s", collection, doc_id)
        self._notify(collection, doc_id)
        return doc_id

    async def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        data = self._dumps(self._resolve(fields))
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT seq FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
            seq = int(row["seq"]) if row is not None else self._next_seq(conn)
            conn.execute(
                "INSERT OR REPLACE INTO documents(collection, id, seq, data) VALUES (?, ?, ?, ?)",
                (collection, doc_id, seq, data),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()
        logger.debug("set %s/%s", collection, doc_id)
        self._notify(collection, doc_id)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        current = self._read_doc(collection, doc_id)
        if current is None:
            raise NotFoundError(f"No document to update: {collection}/{doc_id}")
        merged = dict(current.data)
        merged.update(self._resolve(fields))
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
                (self._dumps(merged), collection, doc_id),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()
        logger.debug("update %s/%s fields=%s", collection, doc_id, sorted(fields))
        self._notify(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            conn.commit()
            removed = cur.rowcount
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()
        logger.debug("delete %s/%s removed=%s", collection, doc_id, removed)
        # Deleting a missing document is not an error (same as Firestore).
        if removed:
            self._notify(collection, doc_id)

    def subscribe(self, query: Query, on_push: Callable[[list[Document]], None]) -> Unsubscribe:
        lst = _Listener(
            collection=query.collection,
            doc_id=None,
            query=query,
            callback=on_push,
            loop=asyncio.get_running_loop(),
        )
        return self._add_listener(lst, self._run_query(query))

    def subscribe_document(
            self,
            collection: str,
            doc_id: str,
            on_push: Callable[[Document | None], None],
    ) -> Unsubscribe:
        lst = _Listener(
            collection=collection,
            doc_id=doc_id,
            query=None,
            callback=on_push,
            loop=asyncio.get_running_loop(),
        )
        return self._add_listener(lst, self._read_doc(collection, doc_id))
