# tests/test_models.py

from __future__ import annotations

from datetime import datetime, timezone

from teamboard.core.models import (
    Membership,
    Priority,
    Role,
    Task,
    TaskStatus,
    User,
    members_path,
    tasks_path,
    to_epoch,
)
from teamboard.core.ports import Document


def test_paths():
    assert members_path("t1") == "teams/t1/members"
    assert tasks_path("t1") == "teams/t1/tasks"


def test_task_from_doc_reads_camel_case_fields():
    doc = Document(
        id="abc",
        data={
            "title": "Write report",
            "description": "Q3",
            "deadline": "2024-05-01",
            "priority": "High",
            "assignedTo": "u1",
            "assignedToEmail": "a@x.io",
            "status": "completed",
            "imageUrl": "https://img",
            "createdBy": "u1",
            "createdAt": 1700000000.5,
        },
    )

    task = Task.from_doc(doc)

    assert task.id == "abc"
    assert task.priority is Priority.HIGH
    assert task.status is TaskStatus.COMPLETED
    assert task.is_completed
    assert task.image_url == "https://img"
    assert task.created_at == 1700000000.5


def test_task_from_doc_tolerates_missing_and_unknown_values():
    task = Task.from_doc(Document(id="x", data={"status": "archived", "priority": "urgent", "deadline": ""}))

    assert task.title == ""
    assert task.status is TaskStatus.PENDING
    assert task.priority is Priority.MEDIUM
    assert task.deadline is None
    assert task.image_url is None
    assert task.created_at is None


def test_priority_accepts_case_variants():
    assert Priority.from_doc("high") is Priority.HIGH
    assert Priority.from_doc(" LOW ") is Priority.LOW
    assert Priority.from_doc(None) is Priority.MEDIUM


def test_status_from_checkbox():
    assert TaskStatus.from_checkbox(True) is TaskStatus.COMPLETED
    assert TaskStatus.from_checkbox(False) is TaskStatus.PENDING


def test_membership_unknown_role_is_member():
    m = Membership.from_doc(Document(id="m1", data={"userId": "u1", "userEmail": "a@x.io", "role": "admin"}))
    assert m.role is Role.MEMBER
    assert m.user_id == "u1"


def test_user_display_name_falls_back_to_email():
    u = User.from_doc(Document(id="u1", data={"email": "a@x.io"}))
    assert u.display_name == "a@x.io"


def test_to_epoch_accepts_datetimes():
    dt = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert to_epoch(dt) == dt.timestamp()
    assert to_epoch("nonsense") is None
    assert to_epoch(None) is None
