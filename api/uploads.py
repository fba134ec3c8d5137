"""Serve stored blobs by storage name (development convenience).

Production deployments put a static file server in front of the upload
directory; this route resolves the same ``/uploads/<storageRef>`` URLs.
Storage names are validated by the blob store, so path traversal is
rejected before any disk access.
"""

from __future__ import annotations

import mimetypes
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from api.deps import get_service
from services.file_service import FileService

router = APIRouter(prefix="/uploads", tags=["uploads"])


def content_disposition(filename: str, disposition: str = "inline") -> str:
    """Header value for *filename*, RFC 5987 encoded when it is not plain ASCII.

    Same rule as starlette's ``FileResponse``: header values are latin-1, so
    anything ``quote`` would change goes out as ``filename*=utf-8''...``.
    """
    quoted = quote(filename)
    if quoted != filename:
        return f"{disposition}; filename*=utf-8''{quoted}"
    return f'{disposition}; filename="{filename}"'


@router.get("/{storage_ref}")
async def download_blob(storage_ref: str, service: FileService = Depends(get_service)):
    data = await service.read_blob(storage_ref)

    content_type, _ = mimetypes.guess_type(storage_ref)
    if not content_type:
        content_type = "application/octet-stream"

    # Storage names are "<ms>-<name>"; offer the original-looking name.
    display_name = storage_ref.split("-", 1)[-1]
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": content_disposition(display_name)},
    )
