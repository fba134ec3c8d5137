"""Roster — create users and classrooms, join by code, list memberships.

Credential handling is out of scope; users are created with a name and a
role and identified afterwards by their opaque id.
"""

from __future__ import annotations

import logging
import secrets
import string

from errors.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from models.catalog import Classroom, Role, User
from services.catalog import Catalog

logger = logging.getLogger(__name__)

JOIN_CODE_LENGTH = 6
_JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
_MAX_CODE_ATTEMPTS = 5


def generate_join_code() -> str:
    """Six uppercase alphanumerics, e.g. ``"K3ZQ9A"``."""
    return "".join(secrets.choice(_JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


class RosterService:
    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def create_user(self, name: str, role: Role) -> User:
        name = name.strip()
        if not name:
            raise InvalidInputError("name must not be empty")
        user = await self._catalog.create_user(User(name=name, role=role))
        logger.info("Created %s %s", role.value, user.id)
        return user

    async def create_classroom(self, teacher_id: str, name: str) -> Classroom:
        name = name.strip()
        if not name:
            raise InvalidInputError("classroom name must not be empty")
        teacher = await self._catalog.get_user(teacher_id)
        if teacher.role is not Role.TEACHER:
            raise ForbiddenError("only teachers may create classrooms")

        for _ in range(_MAX_CODE_ATTEMPTS):
            classroom = Classroom(name=name, teacher_id=teacher_id, code=generate_join_code())
            try:
                await self._catalog.create_classroom(classroom)
            except ConflictError:
                logger.debug("Join code %s taken, drawing another", classroom.code)
                continue
            logger.info("Teacher %s created classroom %s (%s)", teacher_id, classroom.id, classroom.code)
            return classroom
        raise ConflictError("could not allocate a unique join code")

    async def join_classroom(self, student_id: str, code: str) -> Classroom:
        """Enroll a student by join code (case-insensitive).  Re-joining is a no-op."""
        student = await self._catalog.get_user(student_id)
        if student.role is not Role.STUDENT:
            raise ForbiddenError("only students may join classrooms")
        classroom = await self._catalog.find_classroom_by_code(code.strip().upper())
        if classroom is None:
            raise NotFoundError("classroom", code)
        return await self._catalog.add_student(classroom.id, student_id)

    async def list_classrooms(self, user_id: str) -> list[Classroom]:
        user = await self._catalog.get_user(user_id)
        return await self._catalog.list_classrooms(user.id, user.role)
