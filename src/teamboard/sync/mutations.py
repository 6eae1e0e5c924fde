# src/teamboard/sync/mutations.py

from __future__ import annotations

"""
Mutation Coordinator.

One coroutine per user intent. Writes are serialized with a lock and every
failure is converted into a status message here; nothing propagates to the
caller. Results become visible only through the next subscription push.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..core.errors import ValidationError, friendly_error_message
from ..core.models import Priority, TaskStatus, tasks_path
from ..core.ports import SERVER_TIMESTAMP, BlobStore, DocumentStore
from ..core.status import StatusBoard
from .session import SessionIdentity, SessionManager
from .team_context import TeamContext

logger = logging.getLogger(__name__)

ConfirmGate = Callable[[str], bool]


@dataclass(frozen=True, slots=True)
class NewTask:
    title: str
    description: str = ""
    deadline: str | None = None
    priority: Priority = Priority.MEDIUM


@dataclass(frozen=True, slots=True)
class ImageAttachment:
    filename: str
    data: bytes
    content_type: str | None = None


def image_blob_path(filename: str, now_ts: float) -> str:
    # Collisions (same millisecond + same name) are accepted and unguarded.
    return f"tasks/{int(now_ts * 1000)}_{filename}"


class MutationCoordinator:
    def __init__(
            self,
            store: DocumentStore,
            blobs: BlobStore,
            session: SessionManager,
            team: TeamContext,
            status: StatusBoard,
            *,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._session = session
        self._team = team
        self._status = status
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _run(
            self,
            action: str,
            op: Callable[[], Awaitable[bool]],
            success: str,
    ) -> bool:
        async with self._lock:
            try:
                done = await op()
            except ValidationError as e:
                self._status.fail(friendly_error_message(e, action=action))
                return False
            except Exception as e:
                logger.warning("%s failed: %r", action, e)
                self._status.fail(friendly_error_message(e, action=action))
                return False
        if done:
            self._status.succeed(success)
        return done

    def _require_identity(self) -> SessionIdentity:
        me = self._session.current_identity
        if me is None:
            raise ValidationError("Sign in first.")
        return me

    def _require_team_id(self) -> str:
        team = self._team.active_team
        if team is None:
            raise ValidationError("No active team.")
        return team.id

    # ---- team ----

    async def create_team(self, name: str) -> bool:
        async def op() -> bool:
            await self._team.create_team(name)
            self._status.clear()
            return True

        return await self._run("Team creation", op, "Team created!")

    async def add_member(self, user_id: str) -> bool:
        async def op() -> bool:
            await self._team.add_member(user_id)
            return True

        return await self._run("Adding member", op, "Member added to the team!")

    # ---- tasks ----

    async def create_task(self, fields: NewTask, image: ImageAttachment | None = None) -> bool:
        async def op() -> bool:
            title = (fields.title or "").strip()
            if not title:
                raise ValidationError("Enter a task title.")
            me = self._require_identity()
            team_id = self._require_team_id()

            image_url: str | None = None
            if image is not None:
                path = image_blob_path(image.filename, self._clock())
                handle = await self._blobs.upload(path, image.data, content_type=image.content_type)
                image_url = await self._blobs.retrieval_url(handle)
                logger.info("Uploaded task image %s", path)

            # If this write fails after the upload, the blob is left orphaned.
            task_id = await self._store.create(
                tasks_path(team_id),
                {
                    "title": title,
                    "description": fields.description or "",
                    "deadline": fields.deadline or None,
                    "priority": Priority.from_doc(fields.priority).value,
                    "assignedTo": me.uid,
                    "assignedToEmail": me.email,
                    "status": TaskStatus.PENDING.value,
                    "imageUrl": image_url,
                    "createdBy": me.uid,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            logger.info("Created task %s in team %s", task_id, team_id)
            return True

        return await self._run("Task creation", op, "Task created!")

    async def update_task_status(self, task_id: str, status: TaskStatus | str) -> bool:
        async def op() -> bool:
            try:
                new_status = TaskStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status: {status!r}.") from None
            team_id = self._require_team_id()
            await self._store.update(tasks_path(team_id), task_id, {"status": new_status.value})
            logger.info("Task %s -> %s", task_id, new_status.value)
            return True

        return await self._run("Task update", op, "Task updated!")

    async def toggle_task(self, task_id: str, checked: bool) -> bool:
        """Checkbox semantics: the target status comes from the checkbox, not the task."""
        return await self.update_task_status(task_id, TaskStatus.from_checkbox(checked))

    async def delete_task(self, task_id: str, confirm: ConfirmGate) -> bool:
        async def op() -> bool:
            team_id = self._require_team_id()
            if not confirm("Are you sure you want to delete this task?"):
                logger.debug("Delete of task %s cancelled", task_id)
                return False
            await self._store.delete(tasks_path(team_id), task_id)
            logger.info("Deleted task %s", task_id)
            return True

        return await self._run("Task deletion", op, "Task deleted!")
