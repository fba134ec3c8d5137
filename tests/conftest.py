"""Shared pytest fixtures for the file service tests.

Provides:
- ``catalog``: Fresh InMemoryCatalog per test
- ``blobs``: Fresh InMemoryBlobStore per test
- ``local_blobs``: LocalBlobStore rooted in ``tmp_path``
- ``refs``: Fresh InMemoryReferenceIndex per test
- ``service``: FileService wired to the above (in-memory blobs)
- ``teacher`` / ``student`` / ``classroom``: seeded catalog entities
"""

from __future__ import annotations

import pytest

from models.catalog import Classroom, Role, User
from services.blob_store import InMemoryBlobStore, LocalBlobStore
from services.catalog import InMemoryCatalog
from services.file_service import FileService
from services.naming import StorageNamer
from services.ref_index import InMemoryReferenceIndex


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def local_blobs(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "uploads")


@pytest.fixture
def refs() -> InMemoryReferenceIndex:
    return InMemoryReferenceIndex()


@pytest.fixture
def service(catalog, blobs, refs) -> FileService:
    return FileService(catalog=catalog, blobs=blobs, refs=refs, namer=StorageNamer())


@pytest.fixture
async def teacher(catalog) -> User:
    return await catalog.create_user(User(id="U1", name="Ms. Rivera", role=Role.TEACHER))


@pytest.fixture
async def student(catalog) -> User:
    return await catalog.create_user(User(id="S1", name="Sam", role=Role.STUDENT))


@pytest.fixture
async def classroom(catalog, teacher, student) -> Classroom:
    return await catalog.create_classroom(
        Classroom(id="C1", name="Physics 101", teacher_id=teacher.id, code="PHYS01", students=[student.id])
    )
