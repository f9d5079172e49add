"""Payload schemas for the message patterns."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from userdir.schemas.user import UserUpdate


class MessageEnvelope(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=128)
    data: dict[str, Any] = Field(default_factory=dict)


class IdPayload(BaseModel):
    # Checked by the identifier validator so malformed ids report InvalidIdentifier
    id: Any = None


class UsernamePayload(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class EmailPayload(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)


class UpdatePayload(IdPayload):
    patch: UserUpdate
