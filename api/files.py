"""File endpoints — personal notes and classroom shared files.

Every route resolves the caller, checks the authorization precondition,
then delegates to :class:`services.file_service.FileService`.  Domain
errors propagate to the ``StorageError`` handler installed in ``main``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from api.deps import get_access_policy, get_caller_id, get_service
from config.settings import get_settings
from errors.exceptions import PayloadTooLargeError
from models.catalog import ContainerKind, FileRecord, FileRecordOut
from models.request import (
    DeleteResponse,
    FileListResponse,
    PublishFileRequest,
    RenameFileRequest,
)
from services.access import AccessPolicy
from services.file_service import FileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])


def _out(record: FileRecord) -> FileRecordOut:
    return FileRecordOut.from_record(record, get_settings().uploads_url_prefix)


async def _read_capped(upload: UploadFile, limit: int) -> bytes:
    """Read at most ``limit + 1`` bytes; reject before anything is stored."""
    data = await upload.read(limit + 1)
    if len(data) > limit:
        raise PayloadTooLargeError(upload.size or len(data), limit)
    return data


# ── Personal scope ───────────────────────────────────────────


@router.post("/users/{user_id}/files", response_model=FileRecordOut)
async def upload_personal_file(
    user_id: str,
    file: UploadFile = File(...),
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    await access.require_manage(caller_id, ContainerKind.USER, user_id)
    data = await _read_capped(file, service.max_upload_bytes)
    record = await service.upload_to_personal(user_id, file.filename or "", data)
    return _out(record)


@router.get("/users/{user_id}/files", response_model=FileListResponse)
async def list_personal_files(
    user_id: str,
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    await access.require_view(caller_id, ContainerKind.USER, user_id)
    records = await service.list_personal(user_id)
    return FileListResponse(files=[_out(r) for r in records])


# ── Classroom scope ──────────────────────────────────────────


@router.post("/classrooms/{classroom_id}/files", response_model=FileRecordOut)
async def upload_classroom_file(
    classroom_id: str,
    file: UploadFile = File(...),
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    await access.require_manage(caller_id, ContainerKind.CLASSROOM, classroom_id)
    data = await _read_capped(file, service.max_upload_bytes)
    record = await service.upload_to_classroom(classroom_id, file.filename or "", data)
    return _out(record)


@router.get("/classrooms/{classroom_id}/files", response_model=FileListResponse)
async def list_classroom_files(
    classroom_id: str,
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    await access.require_view(caller_id, ContainerKind.CLASSROOM, classroom_id)
    records = await service.list_classroom(classroom_id)
    return FileListResponse(files=[_out(r) for r in records])


@router.post("/classrooms/{classroom_id}/publish", response_model=FileRecordOut)
async def publish_file(
    classroom_id: str,
    req: PublishFileRequest,
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    """Share one of the caller's personal notes with a classroom they teach."""
    await access.require_manage(caller_id, ContainerKind.USER, req.user_id)
    await access.require_manage(caller_id, ContainerKind.CLASSROOM, classroom_id)
    record = await service.publish_from_personal(classroom_id, req.user_id, req.record_id)
    return _out(record)


# ── Either scope ─────────────────────────────────────────────


@router.patch("/{kind}/{container_id}/files/{record_id}", response_model=FileRecordOut)
async def rename_file(
    kind: ContainerKind,
    container_id: str,
    record_id: str,
    req: RenameFileRequest,
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    await access.require_manage(caller_id, kind, container_id)
    record = await service.rename_record(kind, container_id, record_id, req.name)
    return _out(record)


@router.delete("/{kind}/{container_id}/files/{record_id}", response_model=DeleteResponse)
async def delete_file(
    kind: ContainerKind,
    container_id: str,
    record_id: str,
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    await access.require_manage(caller_id, kind, container_id)
    await service.delete_record(kind, container_id, record_id)
    return DeleteResponse()
