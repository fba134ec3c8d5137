"""Naming policy — derive storage names for uploaded files.

A storage name is ``"<epoch-ms>-<sanitized original name>"``, e.g.
``"1700000000000-My_Notes.pdf"``.  The millisecond prefix is what keeps
names apart; :class:`StorageNamer` makes it strictly increasing within a
process so two uploads in the same millisecond still get distinct names.
Collisions across processes are caught by the blob store, which refuses
to overwrite an existing name.
"""

from __future__ import annotations

import os
import re
import threading
import time

from errors.exceptions import InvalidInputError
from services.blob_store import MAX_NAME_BYTES

_WHITESPACE_RE = re.compile(r"\s+")
_SEPARATOR_RE = re.compile(r"[\\/]")


def _base_name(original_name: str) -> str:
    # Browsers on Windows may send a full client path.
    return _SEPARATOR_RE.split(original_name)[-1]


def _truncate(clean: str, budget: int) -> str:
    """Cut *clean* to at most *budget* UTF-8 bytes, keeping its extension."""
    if len(clean.encode("utf-8")) <= budget:
        return clean
    stem, ext = os.path.splitext(clean)
    if len(ext.encode("utf-8")) > budget // 2:
        stem, ext = clean, ""
    room = budget - len(ext.encode("utf-8"))
    # Dropping a partial trailing character keeps the result valid UTF-8.
    return stem.encode("utf-8")[:room].decode("utf-8", "ignore") + ext


def generate_storage_name(original_name: str, now_ms: int) -> str:
    """Build the storage name for *original_name* uploaded at *now_ms*.

    Whitespace runs become a single underscore.  Names too long for one
    path component are shortened, extension preserved.  File extension and
    content type are not validated here.

    Raises:
        InvalidInputError: if the name is empty after stripping directories.
    """
    base = _base_name(original_name or "").strip()
    if not base or base in {".", ".."}:
        raise InvalidInputError("filename must not be empty")
    prefix = f"{now_ms}-"
    clean = _truncate(_WHITESPACE_RE.sub("_", base), MAX_NAME_BYTES - len(prefix))
    return prefix + clean


class StorageNamer:
    """Per-process storage-name generator with a monotonic millisecond clock."""

    def __init__(self, clock=None) -> None:
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last_ms = 0

    def _next_ms(self) -> int:
        with self._lock:
            now = self._clock()
            if now <= self._last_ms:
                now = self._last_ms + 1
            self._last_ms = now
            return now

    def __call__(self, original_name: str) -> str:
        # Validate before consuming a tick.
        generate_storage_name(original_name, 0)
        return generate_storage_name(original_name, self._next_ms())
