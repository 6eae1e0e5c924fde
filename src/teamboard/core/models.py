# src/teamboard/core/models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from .ports import Document

# Collection layout (schema-in-code). Teams own members/tasks as sub-collections.
USERS = "users"
TEAMS = "teams"


def members_path(team_id: str) -> str:
    return f"{TEAMS}/{team_id}/members"


def tasks_path(team_id: str) -> str:
    return f"{TEAMS}/{team_id}/tasks"


def to_epoch(raw: Any) -> float | None:
    """Normalize store timestamps (float seconds or datetime) to epoch seconds."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.timestamp()
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _str(data: dict[str, Any], key: str) -> str:
    val = data.get(key)
    return "" if val is None else str(val)


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    val = data.get(key)
    if val is None:
        return None
    s = str(val)
    return s or None


class TaskStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"

    @classmethod
    def from_doc(cls, raw: Any) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @classmethod
    def from_checkbox(cls, checked: bool) -> TaskStatus:
        return cls.COMPLETED if checked else cls.PENDING


class Priority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def from_doc(cls, raw: Any) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            # Accept case variants typed by hand ("high", "LOW").
            for p in cls:
                if p.value.lower() == str(raw).strip().lower():
                    return p
            return cls.MEDIUM


class Role(StrEnum):
    OWNER = "owner"
    MEMBER = "member"

    @classmethod
    def from_doc(cls, raw: Any) -> Role:
        try:
            return cls(raw)
        except ValueError:
            return cls.MEMBER


@dataclass(frozen=True, slots=True)
class User:
    id: str
    username: str
    email: str
    created_at: float | None = None
    avatar: str | None = None

    @property
    def display_name(self) -> str:
        return self.username or self.email

    @classmethod
    def from_doc(cls, doc: Document) -> User:
        d = doc.data
        return cls(
            id=doc.id,
            username=_str(d, "username"),
            email=_str(d, "email"),
            created_at=to_epoch(d.get("createdAt")),
            avatar=_opt_str(d, "avatar"),
        )


@dataclass(frozen=True, slots=True)
class Team:
    id: str
    name: str
    owner_id: str
    owner_email: str
    created_at: float | None = None

    @classmethod
    def from_doc(cls, doc: Document) -> Team:
        d = doc.data
        return cls(
            id=doc.id,
            name=_str(d, "name"),
            owner_id=_str(d, "ownerId"),
            owner_email=_str(d, "ownerEmail"),
            created_at=to_epoch(d.get("createdAt")),
        )


@dataclass(frozen=True, slots=True)
class Membership:
    id: str
    user_id: str
    user_email: str
    role: Role
    joined_at: float | None = None

    @classmethod
    def from_doc(cls, doc: Document) -> Membership:
        d = doc.data
        return cls(
            id=doc.id,
            user_id=_str(d, "userId"),
            user_email=_str(d, "userEmail"),
            role=Role.from_doc(d.get("role")),
            joined_at=to_epoch(d.get("joinedAt")),
        )


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    description: str
    deadline: str | None
    priority: Priority
    assigned_to: str
    assigned_to_email: str
    status: TaskStatus
    image_url: str | None
    created_by: str
    created_at: float | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    @classmethod
    def from_doc(cls, doc: Document) -> Task:
        d = doc.data
        return cls(
            id=doc.id,
            title=_str(d, "title"),
            description=_str(d, "description"),
            deadline=_opt_str(d, "deadline"),
            priority=Priority.from_doc(d.get("priority")),
            assigned_to=_str(d, "assignedTo"),
            assigned_to_email=_str(d, "assignedToEmail"),
            status=TaskStatus.from_doc(d.get("status")),
            image_url=_opt_str(d, "imageUrl"),
            created_by=_str(d, "createdBy"),
            created_at=to_epoch(d.get("createdAt")),
        )
