"""Tests for the Redis catalog and reference index against an in-process fake client."""

from __future__ import annotations

import fnmatch
from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import WatchError

from errors.exceptions import ConflictError, NotFoundError
from models.catalog import Classroom, ContainerKind, FileRecord, Role, User
from services.blob_store import InMemoryBlobStore
from services.catalog import RedisCatalog
from services.file_service import FileService
from services.naming import StorageNamer
from services.ref_index import RedisReferenceIndex

USER = ContainerKind.USER
CLASSROOM = ContainerKind.CLASSROOM


# ---------------------------------------------------------------------------
# Fake redis.asyncio client (strings, sets, WATCH/MULTI pipelines)
# ---------------------------------------------------------------------------


class FakePipeline:
    def __init__(self, server: FakeRedis) -> None:
        self._server = server
        self._queued: list[tuple] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc) -> bool:
        self._queued.clear()
        return False

    async def watch(self, *keys: str) -> None:
        self._server.watched.extend(keys)

    async def get(self, key: str):
        return self._server.data.get(key)

    def multi(self) -> None:
        pass

    def set(self, key: str, value: str) -> None:
        self._queued.append(("set", key, value))

    def sadd(self, key: str, member: str) -> None:
        self._queued.append(("sadd", key, member))

    def srem(self, key: str, member: str) -> None:
        self._queued.append(("srem", key, member))

    def scard(self, key: str) -> None:
        self._queued.append(("scard", key))

    async def execute(self) -> list:
        self._server.execute_calls += 1
        if self._server.watch_failures > 0:
            self._server.watch_failures -= 1
            self._queued.clear()
            raise WatchError("Watched variable changed.")
        results = [self._server.apply(*command) for command in self._queued]
        self._queued.clear()
        return results


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` (decode_responses=True) for the stores."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.sets: defaultdict[str, set[str]] = defaultdict(set)
        self.watched: list[str] = []
        self.watch_failures = 0
        self.execute_calls = 0

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def apply(self, op: str, key: str, *args):
        if op == "set":
            self.data[key] = args[0]
            return True
        if op == "sadd":
            added = args[0] not in self.sets[key]
            self.sets[key].add(args[0])
            return int(added)
        if op == "srem":
            removed = args[0] in self.sets[key]
            self.sets[key].discard(args[0])
            return int(removed)
        if op == "scard":
            return len(self.sets.get(key, ()))
        raise AssertionError(f"unexpected command {op}")

    async def get(self, key: str):
        return self.data.get(key)

    async def set(self, key: str, value: str, nx: bool = False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(self.data.pop(key, None) is not None for key in keys)

    async def scan_iter(self, match: str):
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def scard(self, key: str) -> int:
        return len(self.sets.get(key, ()))


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_catalog(redis) -> RedisCatalog:
    return RedisCatalog(redis, max_retries=3)


@pytest.fixture
async def redis_teacher(redis_catalog) -> User:
    return await redis_catalog.create_user(User(id="U1", name="Ms. Rivera", role=Role.TEACHER))


def _record(name: str) -> FileRecord:
    return FileRecord(original_name=name, storage_ref=f"1-{name}")


# ---------------------------------------------------------------------------
# RedisCatalog.mutate
# ---------------------------------------------------------------------------


class TestRedisCatalogMutate:
    async def test_append_persists_json_document(self, redis, redis_catalog, redis_teacher):
        record = await redis_catalog.append_file(USER, redis_teacher.id, _record("a.pdf"))

        assert await redis_catalog.list_files(USER, redis_teacher.id) == [record]
        assert redis.watched == ["catalog:users:U1"]
        assert "1-a.pdf" in redis.data["catalog:users:U1"]

    async def test_retries_after_concurrent_write(self, redis, redis_catalog, redis_teacher):
        redis.watch_failures = 2
        record = await redis_catalog.append_file(USER, redis_teacher.id, _record("a.pdf"))

        assert redis.execute_calls == 3
        assert await redis_catalog.list_files(USER, redis_teacher.id) == [record]

    async def test_gives_up_with_conflict(self, redis, redis_catalog, redis_teacher):
        redis.watch_failures = 10
        with pytest.raises(ConflictError):
            await redis_catalog.append_file(USER, redis_teacher.id, _record("a.pdf"))

        assert redis.execute_calls == 3
        assert await redis_catalog.list_files(USER, redis_teacher.id) == []

    async def test_failing_mutation_writes_nothing(self, redis, redis_catalog, redis_teacher):
        before = redis.data["catalog:users:U1"]
        with pytest.raises(NotFoundError):
            await redis_catalog.remove_file(USER, redis_teacher.id, "file-missing")

        assert redis.execute_calls == 0
        assert redis.data["catalog:users:U1"] == before

    async def test_missing_container(self, redis, redis_catalog):
        with pytest.raises(NotFoundError) as exc_info:
            await redis_catalog.append_file(CLASSROOM, "ghost", _record("a.pdf"))
        assert exc_info.value.entity_type == "classroom"
        assert redis.execute_calls == 0

    async def test_rename_keeps_storage_ref(self, redis_catalog, redis_teacher):
        record = await redis_catalog.append_file(USER, redis_teacher.id, _record("a.pdf"))
        renamed = await redis_catalog.update_file(USER, redis_teacher.id, record.id, "Final.pdf")

        assert renamed.original_name == "Final.pdf"
        assert renamed.storage_ref == record.storage_ref


# ---------------------------------------------------------------------------
# RedisCatalog classrooms
# ---------------------------------------------------------------------------


class TestRedisCatalogClassrooms:
    @pytest.fixture
    async def physics(self, redis_catalog, redis_teacher) -> Classroom:
        return await redis_catalog.create_classroom(
            Classroom(id="C1", name="Physics", teacher_id=redis_teacher.id, code="PHYS01", students=["S1"])
        )

    async def test_duplicate_code_conflicts(self, redis_catalog, physics):
        with pytest.raises(ConflictError):
            await redis_catalog.create_classroom(
                Classroom(id="C2", name="Chem", teacher_id="U1", code="PHYS01")
            )
        with pytest.raises(NotFoundError):
            await redis_catalog.get_classroom("C2")

    async def test_find_by_code(self, redis_catalog, physics):
        found = await redis_catalog.find_classroom_by_code("PHYS01")
        assert found is not None and found.id == physics.id
        assert await redis_catalog.find_classroom_by_code("NOPE00") is None

    async def test_list_by_role(self, redis_catalog, physics):
        assert [c.id for c in await redis_catalog.list_classrooms("U1", Role.TEACHER)] == ["C1"]
        assert [c.id for c in await redis_catalog.list_classrooms("S1", Role.STUDENT)] == ["C1"]
        assert await redis_catalog.list_classrooms("S2", Role.STUDENT) == []

    async def test_delete_frees_code(self, redis, redis_catalog, physics):
        await redis_catalog.delete_classroom(physics.id)

        assert "catalog:classrooms:C1" not in redis.data
        assert "catalog:code:PHYS01" not in redis.data
        assert await redis_catalog.find_classroom_by_code("PHYS01") is None


# ---------------------------------------------------------------------------
# RedisReferenceIndex
# ---------------------------------------------------------------------------


class TestRedisReferenceIndex:
    async def test_counts_distinct_holders(self, redis):
        refs = RedisReferenceIndex(redis)
        assert await refs.acquire("1-a.pdf", "file-1") == 1
        assert await refs.acquire("1-a.pdf", "file-2") == 2
        assert await refs.acquire("1-a.pdf", "file-2") == 2
        assert await refs.count("1-a.pdf") == 2

    async def test_release_is_idempotent(self, redis):
        refs = RedisReferenceIndex(redis)
        await refs.acquire("1-a.pdf", "file-1")
        await refs.acquire("1-a.pdf", "file-2")

        assert await refs.release("1-a.pdf", "file-1") == 1
        assert await refs.release("1-a.pdf", "file-1") == 1
        assert await refs.release("1-a.pdf", "file-2") == 0
        assert await refs.count("1-a.pdf") == 0

    async def test_acquire_runs_sadd_and_scard_in_one_transaction(self):
        pipe = MagicMock()
        pipe.__aenter__.return_value = pipe
        pipe.execute = AsyncMock(return_value=[1, 2])
        client = MagicMock()
        client.pipeline.return_value = pipe

        count = await RedisReferenceIndex(client).acquire("1-a.pdf", "file-1")

        assert count == 2
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.sadd.assert_called_once_with("blobref:1-a.pdf", "file-1")
        pipe.scard.assert_called_once_with("blobref:1-a.pdf")
        pipe.execute.assert_awaited_once()

    async def test_release_returns_remaining_from_scard(self):
        pipe = MagicMock()
        pipe.__aenter__.return_value = pipe
        pipe.execute = AsyncMock(return_value=[1, 0])
        client = MagicMock()
        client.pipeline.return_value = pipe

        assert await RedisReferenceIndex(client).release("1-a.pdf", "file-1") == 0
        pipe.srem.assert_called_once_with("blobref:1-a.pdf", "file-1")


# ---------------------------------------------------------------------------
# FileService over the Redis backends
# ---------------------------------------------------------------------------


class TestFileServiceOnRedis:
    async def test_publish_then_delete_personal_keeps_shared_blob(self, redis, redis_catalog, redis_teacher):
        await redis_catalog.create_classroom(
            Classroom(id="C1", name="Physics", teacher_id=redis_teacher.id, code="PHYS01")
        )
        blobs = InMemoryBlobStore()
        service = FileService(redis_catalog, blobs, RedisReferenceIndex(redis), namer=StorageNamer())

        personal = await service.upload_to_personal(redis_teacher.id, "Notes.pdf", b"%PDF")
        shared = await service.publish_to_classroom("C1", personal)
        await service.delete_record(USER, redis_teacher.id, personal.id)

        assert await service.list_personal(redis_teacher.id) == []
        assert [f.id for f in await service.list_classroom("C1")] == [shared.id]
        assert await blobs.get(shared.storage_ref) == b"%PDF"

        await service.delete_classroom("C1")
        assert not await blobs.exists(shared.storage_ref)
