"""Shared FastAPI dependencies — caller identity and service wiring.

Tests swap implementations through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Request

from errors.exceptions import UnauthenticatedError
from services.access import AccessPolicy
from services.catalog import get_catalog
from services.file_service import FileService, get_file_service
from services.roster import RosterService

CALLER_HEADER = "X-User-Id"


def get_caller_id(request: Request) -> str:
    """Opaque caller identity, resolved upstream and forwarded as a header."""
    caller_id = request.headers.get(CALLER_HEADER, "").strip()
    if not caller_id:
        raise UnauthenticatedError(f"missing {CALLER_HEADER} header")
    return caller_id


def get_service() -> FileService:
    return get_file_service()


def get_access_policy() -> AccessPolicy:
    return AccessPolicy(get_catalog())


def get_roster() -> RosterService:
    return RosterService(get_catalog())
