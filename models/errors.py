"""Structured error codes shared by the service layer and the HTTP layer.

API error bodies follow the frozen format::

    {"error": "{ERROR_CODE}", "detail": "{human_readable_detail}"}
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Frozen error codes for the file-record lifecycle."""

    NOT_FOUND = "NOT_FOUND"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    BLOB_IO_ERROR = "BLOB_IO_ERROR"
    CONFLICT = "CONFLICT"
    INVALID_INPUT = "INVALID_INPUT"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"


HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.BLOB_IO_ERROR: 500,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.UNAUTHENTICATED: 401,
}


def format_error(code: ErrorCode, detail: str) -> str:
    """Format an error for log lines.

    Returns:
        ``{ERROR_CODE}: {detail}``
    """
    return f"{code.value}: {detail}"


def error_body(code: ErrorCode, detail: str) -> dict[str, str]:
    """Build the JSON body returned to API clients."""
    return {"error": code.value, "detail": detail}
