"""Upload concurrency control.

Each in-flight upload holds up to ``max_upload_bytes`` in memory, so the
number of concurrent uploads per worker process is capped.  Requests over
the cap get 503 instead of queuing forever.

Pure ASGI implementation (not BaseHTTPMiddleware) so request bodies are
streamed through untouched.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

# POST /api/users/{id}/files and POST /api/classrooms/{id}/files
_UPLOAD_PATH_RE = re.compile(r"^/api/(users|classrooms)/[^/]+/files/?$")


def is_upload_request(scope: Scope) -> bool:
    return scope.get("method") == "POST" and bool(_UPLOAD_PATH_RE.match(scope.get("path", "")))


class ConcurrencyLimitMiddleware:
    """Reject uploads with HTTP 503 + ``Retry-After`` when the worker is at capacity.

    Other endpoints (listing, rename, delete, health) pass through unaffected.
    """

    def __init__(self, app: ASGIApp, max_concurrent: int | None = None) -> None:
        self.app = app
        if max_concurrent is None:
            from config.settings import get_settings

            max_concurrent = get_settings().max_concurrent_uploads
        self._max_concurrent = max_concurrent
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        """Lazy-init to ensure semaphore is bound to the running event loop."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
            logger.info("Upload semaphore initialized (max=%d)", self._max_concurrent)
        return self._semaphore

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not is_upload_request(scope):
            await self.app(scope, receive, send)
            return

        sem = self._get_semaphore()

        # Try to acquire without blocking — if full, return 503
        if sem.locked():
            logger.warning("Upload limit reached for %s — returning 503", scope.get("path"))
            body = json.dumps(
                {"error": "SERVICE_BUSY", "detail": "Too many concurrent uploads. Please retry."}
            ).encode()
            await send({
                "type": "http.response.start",
                "status": 503,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"retry-after", b"5"),
                ],
            })
            await send({
                "type": "http.response.body",
                "body": body,
            })
            return

        async with sem:
            await self.app(scope, receive, send)
