"""Reusable dependencies for FastAPI routes."""
from __future__ import annotations

from fastapi import Request
from pydantic import ValidationError

from userdir.core.config import Settings, get_settings
from userdir.core.exceptions import Forbidden
from userdir.core.security import CallerSigner
from userdir.schemas.user import Caller
from userdir.services.users import DirectoryService


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def get_directory(request: Request) -> DirectoryService:
    return request.app.state.directory


async def get_caller(request: Request) -> Caller | None:
    """Resolve the caller forwarded by the gateway; no header means anonymous."""

    settings = get_app_settings(request)
    token = request.headers.get(settings.caller_header)
    if not token:
        return None

    signer = CallerSigner(settings.secret_key)
    try:
        payload = signer.loads(token, max_age=settings.caller_max_age_seconds)
        return Caller.model_validate(payload)
    except (ValueError, ValidationError) as exc:
        raise Forbidden("Invalid caller identity") from exc
