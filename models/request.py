"""API request / response models."""

from __future__ import annotations

from models.base import CamelModel
from models.catalog import FileRecordOut, Role


class CreateUserRequest(CamelModel):
    """POST /api/users — request body."""

    name: str
    role: Role


class CreateClassroomRequest(CamelModel):
    """POST /api/classrooms — request body."""

    name: str


class JoinClassroomRequest(CamelModel):
    """POST /api/classrooms/join — request body."""

    code: str


class RenameFileRequest(CamelModel):
    """PATCH /api/{kind}/{containerId}/files/{recordId} — request body."""

    name: str


class PublishFileRequest(CamelModel):
    """POST /api/classrooms/{classroomId}/publish — request body.

    Identifies the personal-scope source record to share.
    """

    user_id: str
    record_id: str


class FileListResponse(CamelModel):
    """GET .../files — response body, in upload order."""

    files: list[FileRecordOut]


class DeleteResponse(CamelModel):
    success: bool = True
