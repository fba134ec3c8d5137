"""File-record lifecycle — upload, list, rename, publish, delete, teardown.

Coordinates three stores that share no transaction: the blob store (bytes),
the catalog (record metadata) and the reference index (which records hold
each blob).  Each operation is a small saga with a fixed commit order:

* **upload / publish**: blob write (upload only) → reference acquire →
  catalog append.  A crash leaves an orphaned blob, never a record that
  points at missing bytes.  A handled catalog failure rolls the blob back.
* **delete / teardown**: reference release → blob delete if no holder is
  left → catalog removal.  Blob deletion is best-effort: an ``IOError``
  is logged and the record is removed anyway.

No operation retries on its own; retry policy lives in the store adapters.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from errors.exceptions import (
    BlobIOError,
    InvalidInputError,
    NotFoundError,
    PayloadTooLargeError,
    StorageError,
)
from models.catalog import Classroom, ContainerKind, FileRecord
from services.blob_store import BlobStore
from services.catalog import Catalog
from services.naming import StorageNamer
from services.ref_index import ReferenceIndex

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class FileService:
    """Lifecycle operations over personal and classroom file lists.

    All collaborators are injected; nothing here touches a global path or
    client.  Authorization (who may call what) is checked by the caller.
    """

    def __init__(
        self,
        catalog: Catalog,
        blobs: BlobStore,
        refs: ReferenceIndex,
        namer: Callable[[str], str] | None = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._catalog = catalog
        self._blobs = blobs
        self._refs = refs
        self._namer = namer or StorageNamer()
        self._max_upload_bytes = max_upload_bytes

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    # ── Uploads ──

    async def upload_to_personal(self, user_id: str, original_name: str, data: bytes) -> FileRecord:
        """Store *data* and append a record to the user's personal notes."""
        return await self._upload(ContainerKind.USER, user_id, original_name, data)

    async def upload_to_classroom(self, classroom_id: str, original_name: str, data: bytes) -> FileRecord:
        """Store *data* and append a record to the classroom's shared files."""
        return await self._upload(ContainerKind.CLASSROOM, classroom_id, original_name, data)

    async def _upload(
        self,
        kind: ContainerKind,
        container_id: str,
        original_name: str,
        data: bytes,
    ) -> FileRecord:
        await self._catalog.load(kind, container_id)
        if len(data) > self._max_upload_bytes:
            raise PayloadTooLargeError(len(data), self._max_upload_bytes)
        storage_name = self._namer(original_name)

        # Blob first: if this fails no metadata is written.
        await self._blobs.put(storage_name, data)

        record = FileRecord(original_name=original_name, storage_ref=storage_name)
        await self._commit(kind, container_id, record)
        logger.info(
            "Uploaded %s to %s %s as %s (%d bytes)",
            original_name, kind.value, container_id, storage_name, len(data),
        )
        return record

    async def _commit(self, kind: ContainerKind, container_id: str, record: FileRecord) -> None:
        await self._refs.acquire(record.storage_ref, record.id)
        try:
            await self._catalog.append_file(kind, container_id, record)
        except StorageError:
            # Container vanished or the append lost a race; undo our hold.
            await self._release_blob(record)
            raise

    # ── Reads ──

    async def list_personal(self, user_id: str) -> list[FileRecord]:
        return await self._catalog.list_files(ContainerKind.USER, user_id)

    async def list_classroom(self, classroom_id: str) -> list[FileRecord]:
        return await self._catalog.list_files(ContainerKind.CLASSROOM, classroom_id)

    async def get_record(self, kind: ContainerKind, container_id: str, record_id: str) -> FileRecord:
        return await self._catalog.get_file(kind, container_id, record_id)

    async def read_blob(self, storage_ref: str) -> bytes:
        """Fetch the bytes behind a record.  Missing blobs raise ``NotFoundError``."""
        return await self._blobs.get(storage_ref)

    # ── Rename ──

    async def rename_record(
        self,
        kind: ContainerKind,
        container_id: str,
        record_id: str,
        new_name: str,
    ) -> FileRecord:
        """Change the display name only; ``storage_ref`` and the blob stay put."""
        new_name = (new_name or "").strip()
        if not new_name:
            raise InvalidInputError("filename must not be empty")
        record = await self._catalog.update_file(kind, container_id, record_id, new_name)
        logger.info("Renamed %s in %s %s to %r", record_id, kind.value, container_id, new_name)
        return record

    # ── Publish ──

    async def publish_to_classroom(self, classroom_id: str, source: FileRecord) -> FileRecord:
        """Share a personal record with a classroom without copying bytes.

        The classroom gets a *new* record (new id) with the same
        ``storage_ref``; the source stays in the personal list.  Both now
        hold the blob in the reference index.
        """
        await self._catalog.get_classroom(classroom_id)
        record = FileRecord(
            original_name=source.original_name,
            storage_ref=source.storage_ref,
            created_at=source.created_at,
        )
        await self._refs.acquire(record.storage_ref, record.id)
        if not await self._blobs.exists(record.storage_ref):
            await self._refs.release(record.storage_ref, record.id)
            raise NotFoundError("blob", record.storage_ref)
        try:
            await self._catalog.append_file(ContainerKind.CLASSROOM, classroom_id, record)
        except StorageError:
            await self._release_blob(record)
            raise
        logger.info(
            "Published %s (%s) to classroom %s as %s",
            source.id, source.storage_ref, classroom_id, record.id,
        )
        return record

    async def publish_from_personal(self, classroom_id: str, user_id: str, record_id: str) -> FileRecord:
        """Look up a personal record by id and publish it."""
        source = await self.get_record(ContainerKind.USER, user_id, record_id)
        return await self.publish_to_classroom(classroom_id, source)

    # ── Delete ──

    async def delete_record(self, kind: ContainerKind, container_id: str, record_id: str) -> None:
        """Remove a record; reclaim its blob if no other record holds it."""
        record = await self._catalog.get_file(kind, container_id, record_id)
        await self._release_blob(record)
        await self._catalog.remove_file(kind, container_id, record_id)
        logger.info("Deleted %s from %s %s", record_id, kind.value, container_id)

    async def delete_classroom(self, classroom_id: str) -> None:
        """Tear down a classroom, releasing every shared file's blob."""
        classroom: Classroom = await self._catalog.get_classroom(classroom_id)
        await asyncio.gather(*(self._release_blob(record) for record in classroom.files))
        await self._catalog.delete_classroom(classroom_id)
        logger.info("Deleted classroom %s (%d files released)", classroom_id, len(classroom.files))

    async def _release_blob(self, record: FileRecord) -> None:
        remaining = await self._refs.release(record.storage_ref, record.id)
        if remaining > 0:
            logger.debug("Blob %s still held by %d record(s)", record.storage_ref, remaining)
            return
        try:
            await self._blobs.delete(record.storage_ref)
        except BlobIOError:
            logger.warning(
                "Failed to delete blob %s for record %s; leaving orphan",
                record.storage_ref, record.id, exc_info=True,
            )


# ── Module-level Singleton ───────────────────────────────────

_service: FileService | None = None


def get_file_service() -> FileService:
    """Get the singleton file service wired to the configured stores."""
    global _service
    if _service is None:
        from config.settings import get_settings
        from services.blob_store import get_blob_store
        from services.catalog import get_catalog
        from services.ref_index import get_reference_index

        settings = get_settings()
        _service = FileService(
            catalog=get_catalog(),
            blobs=get_blob_store(),
            refs=get_reference_index(),
            max_upload_bytes=settings.max_upload_bytes,
        )
    return _service
