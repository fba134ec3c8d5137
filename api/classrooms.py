"""Roster endpoints — users, classrooms, join codes, teardown."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.deps import get_access_policy, get_caller_id, get_roster, get_service
from models.catalog import Classroom, ContainerKind, User
from models.request import (
    CreateClassroomRequest,
    CreateUserRequest,
    DeleteResponse,
    JoinClassroomRequest,
)
from services.access import AccessPolicy
from services.file_service import FileService
from services.roster import RosterService

router = APIRouter(prefix="/api", tags=["classrooms"])


@router.post("/users", response_model=User)
async def create_user(req: CreateUserRequest, roster: RosterService = Depends(get_roster)):
    return await roster.create_user(req.name, req.role)


@router.post("/classrooms", response_model=Classroom)
async def create_classroom(
    req: CreateClassroomRequest,
    caller_id: str = Depends(get_caller_id),
    roster: RosterService = Depends(get_roster),
):
    return await roster.create_classroom(caller_id, req.name)


@router.post("/classrooms/join", response_model=Classroom)
async def join_classroom(
    req: JoinClassroomRequest,
    caller_id: str = Depends(get_caller_id),
    roster: RosterService = Depends(get_roster),
):
    return await roster.join_classroom(caller_id, req.code)


@router.get("/classrooms", response_model=list[Classroom])
async def list_classrooms(
    caller_id: str = Depends(get_caller_id),
    roster: RosterService = Depends(get_roster),
):
    return await roster.list_classrooms(caller_id)


@router.delete("/classrooms/{classroom_id}", response_model=DeleteResponse)
async def delete_classroom(
    classroom_id: str,
    caller_id: str = Depends(get_caller_id),
    service: FileService = Depends(get_service),
    access: AccessPolicy = Depends(get_access_policy),
):
    """Delete a classroom and release every shared file it holds."""
    await access.require_manage(caller_id, ContainerKind.CLASSROOM, classroom_id)
    await service.delete_classroom(classroom_id)
    return DeleteResponse()
