"""Catalog entities — users, classrooms and the file records they own.

A :class:`FileRecord` lives inline in exactly one owning list: a user's
``personal_notes`` or a classroom's ``files``.  Publishing creates a new
record in the classroom that points at the same ``storage_ref``; the
reference index (``services.ref_index``) tracks how many records share a
blob so deleting one copy never destroys the other's bytes.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from urllib.parse import quote

from pydantic import Field

from models.base import CamelModel


def generate_record_id() -> str:
    """Generate a new file record ID."""
    return f"file-{uuid.uuid4().hex[:12]}"


def generate_entity_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


# ── Enums ────────────────────────────────────────────────────


class Role(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class ContainerKind(str, Enum):
    """Which kind of entity owns a file list."""

    USER = "users"
    CLASSROOM = "classrooms"


# ── File Record ──────────────────────────────────────────────


class FileRecord(CamelModel):
    """Metadata for one stored file inside an owning container's list."""

    id: str = Field(default_factory=generate_record_id)
    original_name: str
    storage_ref: str
    created_at: int = Field(default_factory=_now_ms)  # epoch milliseconds


class FileRecordOut(FileRecord):
    """File record descriptor returned to API callers, with its fetch URL."""

    url: str

    @classmethod
    def from_record(cls, record: FileRecord, url_prefix: str) -> FileRecordOut:
        return cls(
            **record.model_dump(),
            url=f"{url_prefix.rstrip('/')}/{quote(record.storage_ref, safe='')}",
        )


# ── Owning containers ────────────────────────────────────────


class User(CamelModel):
    id: str = Field(default_factory=lambda: generate_entity_id("user"))
    name: str
    role: Role
    personal_notes: list[FileRecord] = Field(default_factory=list)

    @property
    def files(self) -> list[FileRecord]:
        return self.personal_notes


class Classroom(CamelModel):
    id: str = Field(default_factory=lambda: generate_entity_id("class"))
    name: str
    teacher_id: str
    code: str
    students: list[str] = Field(default_factory=list)
    files: list[FileRecord] = Field(default_factory=list)

    def has_member(self, user_id: str) -> bool:
        return user_id == self.teacher_id or user_id in self.students


Container = User | Classroom
