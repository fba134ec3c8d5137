"""Domain-specific exceptions for the classroom file service.

These exceptions let the service layer describe *what* went wrong
(missing container, oversized upload, disk failure, ...) while the API
layer decides *how* to report it.  Every exception carries an
:class:`~models.errors.ErrorCode` so a single handler can map it to an
HTTP status.
"""

from __future__ import annotations

from models.errors import ErrorCode


class StorageError(Exception):
    """Base class for file-lifecycle errors."""

    code: ErrorCode = ErrorCode.INVALID_INPUT

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(StorageError):
    """A container (user, classroom), record or blob does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} '{entity_id}' not found")


class PayloadTooLargeError(StorageError):
    """An upload exceeded the configured byte cap."""

    code = ErrorCode.PAYLOAD_TOO_LARGE

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"upload of {size} bytes exceeds limit of {limit} bytes")


class BlobIOError(StorageError):
    """The blob store failed to read, write or delete bytes.

    Wraps the underlying ``OSError`` (available as ``__cause__``) together
    with the operation and storage name that failed.
    """

    code = ErrorCode.BLOB_IO_ERROR

    def __init__(self, operation: str, storage_name: str, message: str) -> None:
        self.operation = operation
        self.storage_name = storage_name
        super().__init__(f"blob {operation} failed for '{storage_name}': {message}")


class ConflictError(StorageError):
    """Naming collision or a concurrent modification that could not be merged."""

    code = ErrorCode.CONFLICT


class InvalidInputError(StorageError):
    """Malformed identifier, empty filename or similar bad input."""

    code = ErrorCode.INVALID_INPUT


class ForbiddenError(StorageError):
    """The caller failed an authorization precondition."""

    code = ErrorCode.FORBIDDEN


class UnauthenticatedError(StorageError):
    """No caller identity accompanied the request."""

    code = ErrorCode.UNAUTHENTICATED
