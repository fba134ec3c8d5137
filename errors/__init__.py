"""Custom exception hierarchy for the classroom file service."""

from errors.exceptions import (
    BlobIOError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PayloadTooLargeError,
    StorageError,
    UnauthenticatedError,
)

__all__ = [
    "BlobIOError",
    "ConflictError",
    "ForbiddenError",
    "InvalidInputError",
    "NotFoundError",
    "PayloadTooLargeError",
    "StorageError",
    "UnauthenticatedError",
]
