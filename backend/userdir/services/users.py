"""Directory service: the operations exposed through the message patterns.

Every operation runs the same pipeline and stops at the first failure:

1. validate the identifier (no repository access on a malformed id),
2. authorize the caller,
3. call the repository,
4. project the record into the view the caller is entitled to.
"""
from __future__ import annotations

import logging
import math

from userdir.core.config import Settings, get_settings
from userdir.core.exceptions import InvalidPayload
from userdir.core.identifiers import validate_identifier
from userdir.core.security import PasswordHasher
from userdir.repositories.users import UserRepository
from userdir.schemas.user import (
    PRIVILEGED_ROLES,
    Caller,
    FullView,
    MetaView,
    PageMeta,
    PaginationParams,
    SummaryView,
    UniqueKey,
    UserCreate,
    UserPage,
    UserUpdate,
    ViewKind,
)
from userdir.services import lifecycle
from userdir.services.lifecycle import Transition, next_state, state_of
from userdir.services.views import full_view, project

logger = logging.getLogger(__name__)


class DirectoryService:
    """Orchestrates validation, authorization, persistence and projection."""

    def __init__(
        self,
        repository: UserRepository,
        settings: Settings | None = None,
        hasher: type[PasswordHasher] | PasswordHasher = PasswordHasher,
    ) -> None:
        self.repository = repository
        self.settings = settings or get_settings()
        self.hasher = hasher

    async def create(self, draft: UserCreate, caller: Caller | None = None) -> FullView:
        lifecycle.authorize_create(caller, draft.roles, self.settings.open_registration)
        record = await self.repository.insert(
            username=draft.username,
            email=draft.email,
            password_hash=self.hasher.hash(draft.password),
            roles=[role.value for role in draft.roles],
        )
        logger.info("Created user %s (%s)", record.id, record.username)
        return full_view(record)

    async def find_all(self, params: PaginationParams, caller: Caller | None) -> UserPage:
        caller = lifecycle.require_authenticated(caller)
        page_size = params.page_size or self.settings.default_page_size
        if page_size > self.settings.max_page_size:
            raise InvalidPayload(f"page_size must not exceed {self.settings.max_page_size}")
        if params.include_removed:
            lifecycle.authorize_include_removed(caller)

        records, total = await self.repository.list(params.page, page_size, include_removed=params.include_removed)
        kind = ViewKind.FULL if caller.has_role(*PRIVILEGED_ROLES) else ViewKind.SUMMARY
        return UserPage(
            items=[project(record, caller, kind) for record in records],
            meta=PageMeta(
                total=total,
                page=params.page,
                page_size=page_size,
                page_count=math.ceil(total / page_size),
            ),
        )

    async def find_by_id(self, user_id: str, caller: Caller | None) -> SummaryView | FullView:
        user_id = validate_identifier(user_id)
        caller = lifecycle.require_authenticated(caller)
        record = await self.repository.get_by_id(user_id)
        return project(record, caller, ViewKind.FULL)

    async def find_by_username(self, username: str, caller: Caller | None) -> SummaryView | FullView:
        return await self._find_by_key(UniqueKey.USERNAME, username, caller)

    async def find_by_email(self, email: str, caller: Caller | None) -> SummaryView | FullView:
        return await self._find_by_key(UniqueKey.EMAIL, email, caller)

    async def _find_by_key(self, kind: UniqueKey, value: str, caller: Caller | None) -> SummaryView | FullView:
        caller = lifecycle.require_authenticated(caller)
        if not isinstance(value, str) or not value.strip():
            raise InvalidPayload(f"{kind.value} must be a non-empty string")
        record = await self.repository.get_by_unique_key(kind, value.strip().lower())
        return project(record, caller, ViewKind.FULL)

    async def find_meta(self, user_id: str, caller: Caller | None) -> MetaView:
        user_id = validate_identifier(user_id)
        # Fail closed before the record is even read
        caller = lifecycle.require_admin(caller, "view metadata of", user_id)
        # Metadata reports removal status, so removed records are visible here
        record = await self.repository.get_by_id(user_id, include_removed=True)
        return project(record, caller, ViewKind.META)  # type: ignore[return-value]

    async def find_summary(self, user_id: str, caller: Caller | None) -> SummaryView:
        user_id = validate_identifier(user_id)
        caller = lifecycle.require_authenticated(caller)
        record = await self.repository.get_by_id(user_id)
        return project(record, caller, ViewKind.SUMMARY)

    async def update(self, user_id: str, patch: UserUpdate, caller: Caller | None) -> SummaryView | FullView:
        user_id = validate_identifier(user_id)
        caller = lifecycle.authorize_update(caller, user_id, changes_roles=patch.roles is not None)

        fields = patch.model_dump(exclude_none=True, exclude={"password", "roles"})
        if patch.password is not None:
            fields["password_hash"] = self.hasher.hash(patch.password)
        if patch.roles is not None:
            fields["roles"] = [role.value for role in patch.roles]

        record = await self.repository.patch(user_id, fields)
        logger.info("Updated user %s fields: %s", record.id, ", ".join(sorted(fields)))
        return project(record, caller, ViewKind.FULL)

    async def remove(self, user_id: str, caller: Caller | None) -> SummaryView | FullView:
        user_id = validate_identifier(user_id)
        caller = lifecycle.authorize_remove(caller, user_id)
        current = await self.repository.get_by_id(user_id, include_removed=True)
        next_state(state_of(current), Transition.REMOVE)
        record = await self.repository.soft_delete(user_id)
        logger.info("Removed user %s", record.id)
        return project(record, caller, ViewKind.FULL)

    async def restore(self, user_id: str, caller: Caller | None) -> SummaryView | FullView:
        user_id = validate_identifier(user_id)
        caller = lifecycle.authorize_restore(caller, user_id)
        current = await self.repository.get_by_id(user_id, include_removed=True)
        next_state(state_of(current), Transition.RESTORE)
        record = await self.repository.restore(user_id)
        logger.info("Restored user %s", record.id)
        return project(record, caller, ViewKind.FULL)
