"""Blob store — durable byte storage for uploaded files.

Blobs are addressed by the storage name produced by ``services.naming``.
The store is append-only in practice: names are fresh, so ``put`` refuses
to overwrite (``ConflictError``) and there is no in-place update.
``delete`` is idempotent because the catalog and the store can diverge
after a partial failure.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

from errors.exceptions import BlobIOError, ConflictError, InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[\\/\x00]")

# Single path component limit on common filesystems (NAME_MAX).
MAX_NAME_BYTES = 255


def validate_storage_name(storage_name: str) -> str:
    """Reject names that could escape the store root or exceed ``MAX_NAME_BYTES``."""
    if not storage_name or storage_name in {".", ".."} or _UNSAFE_NAME_RE.search(storage_name):
        raise InvalidInputError(f"invalid storage name: {storage_name!r}")
    if len(storage_name.encode("utf-8")) > MAX_NAME_BYTES:
        raise InvalidInputError(f"storage name longer than {MAX_NAME_BYTES} bytes")
    return storage_name


# ── Abstract Interface ───────────────────────────────────────


class BlobStore(ABC):
    """Abstract blob store — implement for different backends."""

    @abstractmethod
    async def put(self, storage_name: str, data: bytes) -> None:
        """Write *data* under *storage_name*.

        Raises ``ConflictError`` if the name is taken, ``BlobIOError`` on I/O failure.
        """
        ...

    @abstractmethod
    async def get(self, storage_name: str) -> bytes:
        """Read a blob.  Raises ``NotFoundError`` if absent."""
        ...

    @abstractmethod
    async def delete(self, storage_name: str) -> None:
        """Remove a blob.  Removing an absent name is a no-op."""
        ...

    @abstractmethod
    async def exists(self, storage_name: str) -> bool:
        ...


# ── Local Filesystem Implementation ──────────────────────────


class LocalBlobStore(BlobStore):
    """Blobs as flat files under a single directory.

    Blocking file I/O runs in the default thread pool so the event loop is
    never stalled by disk latency.
    """

    def __init__(self, root: str | os.PathLike[str]):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, storage_name: str) -> Path:
        return self._root / validate_storage_name(storage_name)

    def _write(self, path: Path, data: bytes) -> None:
        # "x" mode: fail instead of silently overwriting an existing blob.
        with open(path, "xb") as fh:
            try:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            except OSError:
                fh.close()
                path.unlink(missing_ok=True)
                raise

    async def put(self, storage_name: str, data: bytes) -> None:
        path = self._path(storage_name)
        try:
            await asyncio.to_thread(self._write, path, data)
        except FileExistsError as exc:
            raise ConflictError(f"blob '{storage_name}' already exists") from exc
        except OSError as exc:
            raise BlobIOError("write", storage_name, str(exc)) from exc
        logger.debug("Stored blob %s (%d bytes)", storage_name, len(data))

    async def get(self, storage_name: str) -> bytes:
        path = self._path(storage_name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise NotFoundError("blob", storage_name) from exc
        except OSError as exc:
            raise BlobIOError("read", storage_name, str(exc)) from exc

    async def delete(self, storage_name: str) -> None:
        path = self._path(storage_name)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise BlobIOError("delete", storage_name, str(exc)) from exc
        logger.debug("Deleted blob %s", storage_name)

    async def exists(self, storage_name: str) -> bool:
        return await asyncio.to_thread(self._path(storage_name).is_file)


# ── In-Memory Implementation ────────────────────────────────


class InMemoryBlobStore(BlobStore):
    """Dict-backed store for tests and throwaway dev instances."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def put(self, storage_name: str, data: bytes) -> None:
        validate_storage_name(storage_name)
        if storage_name in self._blobs:
            raise ConflictError(f"blob '{storage_name}' already exists")
        self._blobs[storage_name] = bytes(data)

    async def get(self, storage_name: str) -> bytes:
        try:
            return self._blobs[validate_storage_name(storage_name)]
        except KeyError as exc:
            raise NotFoundError("blob", storage_name) from exc

    async def delete(self, storage_name: str) -> None:
        self._blobs.pop(validate_storage_name(storage_name), None)

    async def exists(self, storage_name: str) -> bool:
        return validate_storage_name(storage_name) in self._blobs

    @property
    def size(self) -> int:
        """Number of blobs currently stored."""
        return len(self._blobs)


# ── Module-level Singleton ───────────────────────────────────

_store: BlobStore | None = None


def get_blob_store() -> BlobStore:
    """Get the singleton blob store instance."""
    global _store
    if _store is None:
        from config.settings import get_settings

        settings = get_settings()
        if settings.blob_store_type == "memory":
            _store = InMemoryBlobStore()
            logger.info("Initialized InMemoryBlobStore")
        else:
            _store = LocalBlobStore(settings.upload_dir)
            logger.info("Initialized LocalBlobStore (root=%s)", settings.upload_dir)
    return _store
