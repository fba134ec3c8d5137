"""Catalog — persisted users and classrooms with their inline file lists.

Every file-list mutation goes through :meth:`Catalog.mutate`, which applies
a function to the latest copy of one container and persists it atomically
with respect to other mutations of the same container.  The in-memory
backend serializes with a per-container lock; the Redis backend uses
``WATCH``/``MULTI`` optimistic retries.  Naive load-modify-save on a shared
list would lose concurrent updates.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, TypeVar

from errors.exceptions import ConflictError, NotFoundError
from models.catalog import Classroom, Container, ContainerKind, FileRecord, Role, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENTITY_LABEL = {
    ContainerKind.USER: "user",
    ContainerKind.CLASSROOM: "classroom",
}


def _find_record(container: Container, record_id: str) -> FileRecord:
    for record in container.files:
        if record.id == record_id:
            return record
    raise NotFoundError("file", record_id)


# ── Abstract Interface ───────────────────────────────────────


class Catalog(ABC):
    """Abstract catalog — implement for different document stores."""

    @abstractmethod
    async def load(self, kind: ContainerKind, container_id: str) -> Container:
        """Load a user or classroom.  Raises ``NotFoundError`` if absent."""
        ...

    @abstractmethod
    async def mutate(
        self,
        kind: ContainerKind,
        container_id: str,
        fn: Callable[[Container], T],
    ) -> T:
        """Apply *fn* to the current container and persist the result atomically.

        If *fn* raises, nothing is persisted.
        """
        ...

    @abstractmethod
    async def create_user(self, user: User) -> User:
        ...

    @abstractmethod
    async def create_classroom(self, classroom: Classroom) -> Classroom:
        """Persist a new classroom.  Raises ``ConflictError`` on a duplicate join code."""
        ...

    @abstractmethod
    async def find_classroom_by_code(self, code: str) -> Classroom | None:
        ...

    @abstractmethod
    async def list_classrooms(self, user_id: str, role: Role) -> list[Classroom]:
        """Classrooms taught by (teacher) or joined by (student) *user_id*."""
        ...

    @abstractmethod
    async def delete_classroom(self, classroom_id: str) -> None:
        ...

    # ── Typed loaders ──

    async def get_user(self, user_id: str) -> User:
        return await self.load(ContainerKind.USER, user_id)

    async def get_classroom(self, classroom_id: str) -> Classroom:
        return await self.load(ContainerKind.CLASSROOM, classroom_id)

    # ── File-list operations ──

    async def list_files(self, kind: ContainerKind, container_id: str) -> list[FileRecord]:
        container = await self.load(kind, container_id)
        return list(container.files)

    async def get_file(self, kind: ContainerKind, container_id: str, record_id: str) -> FileRecord:
        container = await self.load(kind, container_id)
        return _find_record(container, record_id)

    async def append_file(self, kind: ContainerKind, container_id: str, record: FileRecord) -> FileRecord:
        def _append(container: Container) -> FileRecord:
            container.files.append(record.model_copy())
            return record

        return await self.mutate(kind, container_id, _append)

    async def update_file(
        self,
        kind: ContainerKind,
        container_id: str,
        record_id: str,
        original_name: str,
    ) -> FileRecord:
        def _rename(container: Container) -> FileRecord:
            record = _find_record(container, record_id)
            record.original_name = original_name
            return record.model_copy()

        return await self.mutate(kind, container_id, _rename)

    async def remove_file(self, kind: ContainerKind, container_id: str, record_id: str) -> FileRecord:
        def _remove(container: Container) -> FileRecord:
            record = _find_record(container, record_id)
            container.files.remove(record)
            return record

        return await self.mutate(kind, container_id, _remove)

    async def add_student(self, classroom_id: str, student_id: str) -> Classroom:
        def _join(classroom: Classroom) -> Classroom:
            if student_id not in classroom.students:
                classroom.students.append(student_id)
            return classroom.model_copy(deep=True)

        return await self.mutate(ContainerKind.CLASSROOM, classroom_id, _join)


# ── In-Memory Implementation ────────────────────────────────


class InMemoryCatalog(Catalog):
    """Dict-backed catalog with per-container mutual exclusion.

    Suitable for single-worker deployments and tests.  Callers always get
    deep copies, never the stored objects.
    """

    def __init__(self) -> None:
        self._docs: dict[tuple[ContainerKind, str], Container] = {}
        self._locks: defaultdict[tuple[ContainerKind, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    def _get(self, kind: ContainerKind, container_id: str) -> Container:
        doc = self._docs.get((kind, container_id))
        if doc is None:
            raise NotFoundError(ENTITY_LABEL[kind], container_id)
        return doc

    async def load(self, kind: ContainerKind, container_id: str) -> Container:
        return self._get(kind, container_id).model_copy(deep=True)

    async def mutate(self, kind, container_id, fn):
        key = (kind, container_id)
        async with self._locks[key]:
            working = self._get(kind, container_id).model_copy(deep=True)
            result = fn(working)
            self._docs[key] = working
            return result

    async def create_user(self, user: User) -> User:
        self._docs[(ContainerKind.USER, user.id)] = user.model_copy(deep=True)
        return user

    async def create_classroom(self, classroom: Classroom) -> Classroom:
        if await self.find_classroom_by_code(classroom.code) is not None:
            raise ConflictError(f"join code '{classroom.code}' already in use")
        self._docs[(ContainerKind.CLASSROOM, classroom.id)] = classroom.model_copy(deep=True)
        return classroom

    def _classrooms(self) -> list[Classroom]:
        return [
            doc for (kind, _), doc in self._docs.items()
            if kind is ContainerKind.CLASSROOM
        ]

    async def find_classroom_by_code(self, code: str) -> Classroom | None:
        for classroom in self._classrooms():
            if classroom.code == code:
                return classroom.model_copy(deep=True)
        return None

    async def list_classrooms(self, user_id: str, role: Role) -> list[Classroom]:
        if role is Role.TEACHER:
            found = [c for c in self._classrooms() if c.teacher_id == user_id]
        else:
            found = [c for c in self._classrooms() if user_id in c.students]
        return [c.model_copy(deep=True) for c in found]

    async def delete_classroom(self, classroom_id: str) -> None:
        key = (ContainerKind.CLASSROOM, classroom_id)
        async with self._locks[key]:
            if self._docs.pop(key, None) is None:
                raise NotFoundError("classroom", classroom_id)
        self._locks.pop(key, None)

    @property
    def size(self) -> int:
        """Number of users plus classrooms stored."""
        return len(self._docs)


# ── Redis Implementation ─────────────────────────────────────


class RedisCatalog(Catalog):
    """Redis-backed catalog — one JSON document per user / classroom.

    Supports multi-worker deployments.  Mutations retry on ``WatchError``
    up to ``max_retries`` times, then fail with ``ConflictError``.
    """

    _KEY_PREFIX = "catalog:"

    def __init__(self, redis: Any, max_retries: int = 5):
        self._redis = redis
        self._max_retries = max_retries

    def _key(self, kind: ContainerKind, container_id: str) -> str:
        return f"{self._KEY_PREFIX}{kind.value}:{container_id}"

    def _code_key(self, code: str) -> str:
        return f"{self._KEY_PREFIX}code:{code}"

    @staticmethod
    def _parse(kind: ContainerKind, data: str) -> Container:
        model = User if kind is ContainerKind.USER else Classroom
        return model.model_validate_json(data)

    async def load(self, kind: ContainerKind, container_id: str) -> Container:
        data = await self._redis.get(self._key(kind, container_id))
        if data is None:
            raise NotFoundError(ENTITY_LABEL[kind], container_id)
        return self._parse(kind, data)

    async def mutate(self, kind, container_id, fn):
        from redis.exceptions import WatchError

        key = self._key(kind, container_id)
        for attempt in range(1, self._max_retries + 1):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    data = await pipe.get(key)
                    if data is None:
                        raise NotFoundError(ENTITY_LABEL[kind], container_id)
                    container = self._parse(kind, data)
                    result = fn(container)
                    pipe.multi()
                    pipe.set(key, container.model_dump_json())
                    await pipe.execute()
                    return result
                except WatchError:
                    logger.debug(
                        "Concurrent write on %s (attempt %d/%d)",
                        key, attempt, self._max_retries,
                    )
        raise ConflictError(
            f"{ENTITY_LABEL[kind]} '{container_id}' modified concurrently; "
            f"gave up after {self._max_retries} attempts"
        )

    async def create_user(self, user: User) -> User:
        await self._redis.set(self._key(ContainerKind.USER, user.id), user.model_dump_json())
        return user

    async def create_classroom(self, classroom: Classroom) -> Classroom:
        claimed = await self._redis.set(self._code_key(classroom.code), classroom.id, nx=True)
        if not claimed:
            raise ConflictError(f"join code '{classroom.code}' already in use")
        await self._redis.set(
            self._key(ContainerKind.CLASSROOM, classroom.id),
            classroom.model_dump_json(),
        )
        return classroom

    async def find_classroom_by_code(self, code: str) -> Classroom | None:
        classroom_id = await self._redis.get(self._code_key(code))
        if classroom_id is None:
            return None
        try:
            return await self.get_classroom(classroom_id)
        except NotFoundError:
            return None

    async def list_classrooms(self, user_id: str, role: Role) -> list[Classroom]:
        pattern = f"{self._KEY_PREFIX}{ContainerKind.CLASSROOM.value}:*"
        found: list[Classroom] = []
        async for key in self._redis.scan_iter(match=pattern):
            data = await self._redis.get(key)
            if data is None:
                continue
            classroom = Classroom.model_validate_json(data)
            if role is Role.TEACHER and classroom.teacher_id == user_id:
                found.append(classroom)
            elif role is Role.STUDENT and user_id in classroom.students:
                found.append(classroom)
        return found

    async def delete_classroom(self, classroom_id: str) -> None:
        classroom = await self.get_classroom(classroom_id)
        await self._redis.delete(
            self._key(ContainerKind.CLASSROOM, classroom_id),
            self._code_key(classroom.code),
        )

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return await self._redis.ping()
        except Exception:
            return False


# ── Module-level Singletons ──────────────────────────────────

_catalog: Catalog | None = None
_redis_client: Any = None


def get_redis_client():
    """Shared ``redis.asyncio`` client, created on first use."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        from config.settings import get_settings

        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
        )
    return _redis_client


def uses_redis() -> bool:
    from config.settings import get_settings

    settings = get_settings()
    return settings.catalog_store_type == "redis" and bool(settings.redis_url)


def get_catalog() -> Catalog:
    """Get the singleton catalog instance."""
    global _catalog
    if _catalog is None:
        from config.settings import get_settings

        settings = get_settings()
        if uses_redis():
            _catalog = RedisCatalog(get_redis_client(), max_retries=settings.catalog_max_retries)
            logger.info("Initialized RedisCatalog (max_retries=%d)", settings.catalog_max_retries)
        else:
            _catalog = InMemoryCatalog()
            logger.info("Initialized InMemoryCatalog")
    return _catalog
