"""Pydantic schemas for user records, payloads and response views."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class Role(str, Enum):
    USER = "User"
    ADMIN = "Admin"
    MODERATOR = "Moderator"


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.MODERATOR})


class UniqueKey(str, Enum):
    """Unique columns a record can be looked up by."""

    USERNAME = "username"
    EMAIL = "email"


class ViewKind(str, Enum):
    SUMMARY = "summary"
    FULL = "full"
    META = "meta"


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _normalize_roles(value: list[Role]) -> list[Role]:
    unique: list[Role] = []
    for role in value:
        if role not in unique:
            unique.append(role)
    return unique


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class Caller(BaseModel):
    """Authenticated identity on whose behalf an operation runs."""

    id: str
    roles: list[Role] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def has_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    def owns(self, user_id: str) -> bool:
        return self.id.lower() == user_id.lower()


class UserRecord(BaseModel):
    """Stored user as returned by the repository, including the password hash."""

    id: str
    username: str
    email: str
    password_hash: str
    roles: list[Role] = Field(..., min_length=1)
    created_at: UtcDatetime
    updated_at: UtcDatetime
    deleted_at: UtcDatetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_removed(self) -> bool:
        return self.deleted_at is not None


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[a-zA-Z0-9_.\-]+$")
    email: EmailStr

    @field_validator("username", "email")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()


class UserCreate(UserBase):
    password: str = Field(..., min_length=8, max_length=128)
    roles: list[Role] = Field(default_factory=lambda: [Role.USER], min_length=1)

    @field_validator("roles")
    @classmethod
    def _roles(cls, value: list[Role]) -> list[Role]:
        return _normalize_roles(value)


class UserUpdate(BaseModel):
    """Field-level patch; only the fields that are set are applied."""

    username: str | None = Field(default=None, min_length=3, max_length=64, pattern=r"^[a-zA-Z0-9_.\-]+$")
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=8, max_length=128)
    roles: list[Role] | None = Field(default=None, min_length=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("username", "email")
    @classmethod
    def _lower(cls, value: str | None) -> str | None:
        return value.strip().lower() if value is not None else None

    @field_validator("roles")
    @classmethod
    def _roles(cls, value: list[Role] | None) -> list[Role] | None:
        return _normalize_roles(value) if value is not None else None

    @model_validator(mode="after")
    def _not_empty(self) -> "UserUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("Update must change at least one field")
        return self


class SummaryView(BaseModel):
    id: str
    username: str
    roles: list[Role]

    model_config = ConfigDict(from_attributes=True)


class FullView(SummaryView):
    email: str
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


class MetaView(FullView):
    status: str
    is_removed: bool
    account_age_days: int


UserView = SummaryView | FullView | MetaView


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int | None = Field(default=None, ge=1)
    include_removed: bool = False


class PageMeta(BaseModel):
    total: int
    page: int
    page_size: int
    page_count: int


class UserPage(BaseModel):
    items: list[FullView | SummaryView]
    meta: PageMeta
