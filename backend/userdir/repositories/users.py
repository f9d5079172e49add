"""Persistence boundary for user records.

:class:`UserRepository` is the contract the directory service depends on.
:class:`SqlUserRepository` implements it on top of SQLAlchemy's async ORM.
Each call runs in its own session and transaction; a failure rolls the
transaction back so no partial mutation is left visible.

Lifecycle transitions are conditional ``UPDATE`` statements so concurrent
callers race on the database row rather than on a read-modify-write in
Python: exactly one ``remove`` of an active record can win.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from userdir.core.exceptions import (
    AlreadyRemoved,
    DirectoryError,
    DuplicateKey,
    NotFound,
    NotRemoved,
    StorageUnavailable,
)
from userdir.core.identifiers import new_identifier
from userdir.models.user import User
from userdir.schemas.user import UniqueKey, UserRecord

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = frozenset({"username", "email", "password_hash", "roles"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository(ABC):
    """Abstract persistence operations for user records."""

    @abstractmethod
    async def insert(self, username: str, email: str, password_hash: str, roles: list[str]) -> UserRecord:
        """Persist a new active record. Raises DuplicateKey if username or email is taken."""

    @abstractmethod
    async def get_by_id(self, user_id: str, include_removed: bool = False) -> UserRecord:
        """Return the record with ``user_id``. Raises NotFound."""

    @abstractmethod
    async def get_by_unique_key(self, kind: UniqueKey, value: str, include_removed: bool = False) -> UserRecord:
        """Return the record whose ``kind`` column equals ``value``. Raises NotFound."""

    @abstractmethod
    async def list(self, page: int, page_size: int, include_removed: bool = False) -> tuple[list[UserRecord], int]:
        """Return one page of records ordered by creation time, plus the total count."""

    @abstractmethod
    async def patch(self, user_id: str, fields: dict[str, Any]) -> UserRecord:
        """Apply ``fields`` to an active record. Raises NotFound or DuplicateKey."""

    @abstractmethod
    async def soft_delete(self, user_id: str) -> UserRecord:
        """Mark an active record removed. Raises NotFound or AlreadyRemoved."""

    @abstractmethod
    async def restore(self, user_id: str) -> UserRecord:
        """Reactivate a removed record. Raises NotFound or NotRemoved."""


def _duplicate_field(exc: IntegrityError) -> str | None:
    text = str(exc.orig).lower()
    for kind in UniqueKey:
        if kind.value in text:
            return kind.value
    return None


class SqlUserRepository(UserRepository):
    """SQLAlchemy implementation of :class:`UserRepository`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except DirectoryError:
            raise
        except IntegrityError as exc:
            raise DuplicateKey(_duplicate_field(exc)) from exc
        except SQLAlchemyError as exc:
            logger.exception("User storage failure")
            raise StorageUnavailable() from exc

    @staticmethod
    async def _find(session: AsyncSession, *criteria: Any, include_removed: bool = False) -> User | None:
        query = select(User).where(*criteria)
        if not include_removed:
            query = query.where(User.deleted_at.is_(None))
        result = await session.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def _ensure_unique(session: AsyncSession, fields: dict[str, Any], exclude_id: str | None = None) -> None:
        for kind in UniqueKey:
            value = fields.get(kind.value)
            if value is None:
                continue
            query = select(User.id).where(getattr(User, kind.value) == value)
            if exclude_id is not None:
                query = query.where(User.id != exclude_id)
            result = await session.execute(query)
            if result.first() is not None:
                raise DuplicateKey(kind.value)

    async def insert(self, username: str, email: str, password_hash: str, roles: list[str]) -> UserRecord:
        now = utcnow()
        user = User(
            id=new_identifier(),
            username=username,
            email=email,
            password_hash=password_hash,
            roles=list(roles),
            created_at=now,
            updated_at=now,
            deleted_at=None,
        )
        async with self._transaction() as session:
            # Uniqueness spans removed records too so a restore can never collide
            await self._ensure_unique(session, {"username": username, "email": email})
            session.add(user)
            await session.flush()
            return UserRecord.model_validate(user)

    async def get_by_id(self, user_id: str, include_removed: bool = False) -> UserRecord:
        async with self._transaction() as session:
            user = await self._find(session, User.id == user_id, include_removed=include_removed)
            if user is None:
                raise NotFound()
            return UserRecord.model_validate(user)

    async def get_by_unique_key(self, kind: UniqueKey, value: str, include_removed: bool = False) -> UserRecord:
        column = getattr(User, UniqueKey(kind).value)
        async with self._transaction() as session:
            user = await self._find(session, column == value.lower(), include_removed=include_removed)
            if user is None:
                raise NotFound()
            return UserRecord.model_validate(user)

    async def list(self, page: int, page_size: int, include_removed: bool = False) -> tuple[list[UserRecord], int]:
        query = select(User)
        count_query = select(func.count()).select_from(User)
        if not include_removed:
            query = query.where(User.deleted_at.is_(None))
            count_query = count_query.where(User.deleted_at.is_(None))
        offset = (page - 1) * page_size
        query = query.order_by(User.created_at.asc(), User.id.asc()).offset(offset).limit(page_size)

        async with self._transaction() as session:
            total = (await session.execute(count_query)).scalar_one()
            # Pages past the end are empty; the offset may not even fit a database integer
            if offset >= total:
                return [], total
            result = await session.execute(query)
            items = [UserRecord.model_validate(user) for user in result.scalars().all()]
        return items, total

    async def patch(self, user_id: str, fields: dict[str, Any]) -> UserRecord:
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch fields: {', '.join(sorted(unknown))}")

        async with self._transaction() as session:
            user = await self._find(session, User.id == user_id)
            if user is None:
                raise NotFound()
            changed_keys = {
                key: value for key, value in fields.items() if key in {"username", "email"} and value != getattr(user, key)
            }
            await self._ensure_unique(session, changed_keys, exclude_id=user_id)
            for key, value in fields.items():
                setattr(user, key, list(value) if key == "roles" else value)
            user.updated_at = utcnow()
            await session.flush()
            return UserRecord.model_validate(user)

    async def _transition(self, user_id: str, removing: bool) -> UserRecord:
        now = utcnow()
        condition = User.deleted_at.is_(None) if removing else User.deleted_at.is_not(None)
        statement = (
            update(User)
            .where(User.id == user_id, condition)
            .values(deleted_at=now if removing else None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(statement)
            user = await self._find(session, User.id == user_id, include_removed=True)
            if user is None:
                raise NotFound()
            if result.rowcount == 0:
                raise AlreadyRemoved() if removing else NotRemoved()
            return UserRecord.model_validate(user)

    async def soft_delete(self, user_id: str) -> UserRecord:
        return await self._transition(user_id, removing=True)

    async def restore(self, user_id: str) -> UserRecord:
        return await self._transition(user_id, removing=False)


__all__ = ["PATCHABLE_FIELDS", "SqlUserRepository", "UserRepository", "utcnow"]
