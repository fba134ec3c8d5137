"""Authorization preconditions for file operations.

Callers are identified by an opaque user id resolved before any file
operation runs.  Personal lists belong to their user; a classroom is
managed by its teacher and visible to the teacher and enrolled students.
Missing containers surface as ``NotFoundError`` rather than a denial.
"""

from __future__ import annotations

from errors.exceptions import ForbiddenError
from models.catalog import ContainerKind
from services.catalog import Catalog


class AccessPolicy:
    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def can_manage(self, caller_id: str, kind: ContainerKind, container_id: str) -> bool:
        """Upload, rename, delete and publish rights."""
        if kind is ContainerKind.USER:
            await self._catalog.get_user(container_id)
            return caller_id == container_id
        classroom = await self._catalog.get_classroom(container_id)
        return caller_id == classroom.teacher_id

    async def can_view(self, caller_id: str, kind: ContainerKind, container_id: str) -> bool:
        if kind is ContainerKind.USER:
            return await self.can_manage(caller_id, kind, container_id)
        classroom = await self._catalog.get_classroom(container_id)
        return classroom.has_member(caller_id)

    async def require_manage(self, caller_id: str, kind: ContainerKind, container_id: str) -> None:
        if not await self.can_manage(caller_id, kind, container_id):
            raise ForbiddenError(f"caller may not modify {kind.value}/{container_id}")

    async def require_view(self, caller_id: str, kind: ContainerKind, container_id: str) -> None:
        if not await self.can_view(caller_id, kind, container_id):
            raise ForbiddenError(f"caller may not view {kind.value}/{container_id}")

