from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from userdir.core.config import Settings
from userdir.core.exceptions import AlreadyRemoved, DuplicateKey, NotFound, NotRemoved
from userdir.core.identifiers import new_identifier
from userdir.repositories.users import PATCHABLE_FIELDS, UserRepository
from userdir.schemas.user import Caller, Role, UniqueKey, UserCreate, UserRecord
from userdir.services.users import DirectoryService


class FakeHasher:
    """Readable stand-in so service tests do not pay for Argon2."""

    @staticmethod
    def hash(password: str) -> str:
        return f"hashed::{password}"


class FakeUserRepository(UserRepository):
    """In-memory repository that records how often each operation ran."""

    def __init__(self) -> None:
        self.records: dict[str, UserRecord] = {}
        self.calls: Counter[str] = Counter()
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _ensure_unique(self, fields: dict[str, Any], exclude_id: str | None = None) -> None:
        for kind in UniqueKey:
            value = fields.get(kind.value)
            if value is None:
                continue
            for record in self.records.values():
                if record.id != exclude_id and getattr(record, kind.value) == value:
                    raise DuplicateKey(kind.value)

    def _get(self, user_id: str, include_removed: bool) -> UserRecord:
        record = self.records.get(user_id)
        if record is None or (record.is_removed and not include_removed):
            raise NotFound()
        return record

    async def insert(self, username: str, email: str, password_hash: str, roles: list[str]) -> UserRecord:
        self.calls["insert"] += 1
        self._ensure_unique({"username": username, "email": email})
        now = self._tick()
        record = UserRecord(
            id=new_identifier(),
            username=username,
            email=email,
            password_hash=password_hash,
            roles=roles,
            created_at=now,
            updated_at=now,
        )
        self.records[record.id] = record
        return record

    async def get_by_id(self, user_id: str, include_removed: bool = False) -> UserRecord:
        self.calls["get_by_id"] += 1
        return self._get(user_id, include_removed)

    async def get_by_unique_key(self, kind: UniqueKey, value: str, include_removed: bool = False) -> UserRecord:
        self.calls["get_by_unique_key"] += 1
        for record in self.records.values():
            if getattr(record, UniqueKey(kind).value) == value and (include_removed or not record.is_removed):
                return record
        raise NotFound()

    async def list(self, page: int, page_size: int, include_removed: bool = False) -> tuple[list[UserRecord], int]:
        self.calls["list"] += 1
        visible = [record for record in self.records.values() if include_removed or not record.is_removed]
        visible.sort(key=lambda record: (record.created_at, record.id))
        start = (page - 1) * page_size
        return visible[start : start + page_size], len(visible)

    async def patch(self, user_id: str, fields: dict[str, Any]) -> UserRecord:
        self.calls["patch"] += 1
        assert set(fields) <= PATCHABLE_FIELDS
        record = self._get(user_id, include_removed=False)
        changed = {key: value for key, value in fields.items() if getattr(record, key) != value}
        self._ensure_unique(changed, exclude_id=user_id)
        updated = record.model_copy(update={**fields, "updated_at": self._tick()})
        self.records[user_id] = updated
        return updated

    async def soft_delete(self, user_id: str) -> UserRecord:
        self.calls["soft_delete"] += 1
        record = self._get(user_id, include_removed=True)
        if record.is_removed:
            raise AlreadyRemoved()
        now = self._tick()
        updated = record.model_copy(update={"deleted_at": now, "updated_at": now})
        self.records[user_id] = updated
        return updated

    async def restore(self, user_id: str) -> UserRecord:
        self.calls["restore"] += 1
        record = self._get(user_id, include_removed=True)
        if not record.is_removed:
            raise NotRemoved()
        updated = record.model_copy(update={"deleted_at": None, "updated_at": self._tick()})
        self.records[user_id] = updated
        return updated


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        secret_key="test-secret",
        database_url="sqlite+aiosqlite:///:memory:",
        open_registration=True,
        default_page_size=10,
        max_page_size=50,
    )


@pytest.fixture()
def repository() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture()
def hasher() -> type[FakeHasher]:
    return FakeHasher


@pytest.fixture()
def service(repository: FakeUserRepository, settings: Settings, hasher) -> DirectoryService:
    return DirectoryService(repository, settings=settings, hasher=hasher)


@pytest.fixture()
def admin() -> Caller:
    return Caller(id=new_identifier(), roles=[Role.ADMIN])


@pytest.fixture()
def moderator() -> Caller:
    return Caller(id=new_identifier(), roles=[Role.MODERATOR])


@pytest.fixture()
def stranger() -> Caller:
    return Caller(id=new_identifier(), roles=[Role.USER])


@pytest.fixture()
def make_draft():
    def build(name: str, **overrides: Any) -> UserCreate:
        data = {"username": name, "email": f"{name}@example.com", "password": "Sup3rSecret!"}
        data.update(overrides)
        return UserCreate(**data)

    return build


def caller_for(view: Any) -> Caller:
    return Caller(id=view.id, roles=list(view.roles))


@pytest.fixture()
def as_caller():
    return caller_for
