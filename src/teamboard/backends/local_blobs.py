# src/teamboard/backends/local_blobs.py

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path, PurePosixPath

from ..core.errors import BlobError, NotFoundError
from ..core.ports import BlobHandle

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Blob store on the local filesystem; retrieval URLs are file:// URIs."""

    def __init__(self, root: str | Path = "blobs") -> None:
        self._root = Path(root).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _target(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise BlobError(f"Invalid blob path: {path!r}")
        return self._root.joinpath(*rel.parts)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".part")
        tmp.write_bytes(data)
        os.replace(tmp, target)

    async def upload(self, path: str, data: bytes, *, content_type: str | None = None) -> BlobHandle:
        target = self._target(path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            raise BlobError(f"Upload failed for {path}: {e}") from e
        logger.info("Stored blob %s (%d bytes, %s)", path, len(data), content_type or "?")
        return BlobHandle(path=path)

    async def retrieval_url(self, handle: BlobHandle) -> str:
        target = self._target(handle.path)
        if not target.exists():
            raise NotFoundError(f"Blob not found: {handle.path}")
        return target.as_uri()
