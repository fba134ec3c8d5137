"""Reference index — which file records point at each blob.

Publishing copies a record into a classroom while keeping the same
``storage_ref``, so one blob can back several records.  The index maps
``storage_ref -> {record_id, ...}``; a blob may only be deleted once its
set is empty.  Sets (rather than bare counters) make ``acquire`` and
``release`` idempotent per record, so a retried or concurrent delete of the
same record cannot drive the count below the true number of holders.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


# ── Abstract Interface ───────────────────────────────────────


class ReferenceIndex(ABC):
    """Abstract reference index — implement for different backends."""

    @abstractmethod
    async def acquire(self, storage_ref: str, record_id: str) -> int:
        """Register *record_id* as a holder of *storage_ref*.  Returns holder count."""
        ...

    @abstractmethod
    async def release(self, storage_ref: str, record_id: str) -> int:
        """Drop *record_id* as a holder.  Returns the remaining holder count."""
        ...

    @abstractmethod
    async def count(self, storage_ref: str) -> int:
        ...


# ── In-Memory Implementation ────────────────────────────────


class InMemoryReferenceIndex(ReferenceIndex):
    def __init__(self) -> None:
        self._holders: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, storage_ref: str, record_id: str) -> int:
        async with self._lock:
            holders = self._holders.setdefault(storage_ref, set())
            holders.add(record_id)
            return len(holders)

    async def release(self, storage_ref: str, record_id: str) -> int:
        async with self._lock:
            holders = self._holders.get(storage_ref)
            if holders is None:
                return 0
            holders.discard(record_id)
            if not holders:
                del self._holders[storage_ref]
                return 0
            return len(holders)

    async def count(self, storage_ref: str) -> int:
        return len(self._holders.get(storage_ref, ()))


# ── Redis Implementation ─────────────────────────────────────


class RedisReferenceIndex(ReferenceIndex):
    """Redis sets, one per blob; add/remove and cardinality run in one MULTI."""

    _KEY_PREFIX = "blobref:"

    def __init__(self, redis) -> None:
        self._redis = redis

    def _key(self, storage_ref: str) -> str:
        return f"{self._KEY_PREFIX}{storage_ref}"

    async def acquire(self, storage_ref: str, record_id: str) -> int:
        key = self._key(storage_ref)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.sadd(key, record_id)
            pipe.scard(key)
            _, count = await pipe.execute()
        return int(count)

    async def release(self, storage_ref: str, record_id: str) -> int:
        key = self._key(storage_ref)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.srem(key, record_id)
            pipe.scard(key)
            _, count = await pipe.execute()
        return int(count)

    async def count(self, storage_ref: str) -> int:
        return int(await self._redis.scard(self._key(storage_ref)))


# ── Module-level Singleton ───────────────────────────────────

_index: ReferenceIndex | None = None


def get_reference_index() -> ReferenceIndex:
    """Get the singleton reference index, co-located with the catalog backend."""
    global _index
    if _index is None:
        from services.catalog import get_redis_client, uses_redis

        if uses_redis():
            _index = RedisReferenceIndex(get_redis_client())
            logger.info("Initialized RedisReferenceIndex")
        else:
            _index = InMemoryReferenceIndex()
            logger.info("Initialized InMemoryReferenceIndex")
    return _index
