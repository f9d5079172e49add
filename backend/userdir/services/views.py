"""Role-aware projection of user records into response views."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from userdir.core.exceptions import Forbidden
from userdir.schemas.user import (
    PRIVILEGED_ROLES,
    Caller,
    FullView,
    MetaView,
    SummaryView,
    UserRecord,
    ViewKind,
)
from userdir.services.lifecycle import UserState, state_of

logger = logging.getLogger(__name__)


def can_view_full(caller: Caller, record: UserRecord) -> bool:
    return caller.owns(record.id) or caller.has_role(*PRIVILEGED_ROLES)


def summary_view(record: UserRecord) -> SummaryView:
    return SummaryView(id=record.id, username=record.username, roles=list(record.roles))


def full_view(record: UserRecord) -> FullView:
    return FullView(
        id=record.id,
        username=record.username,
        roles=list(record.roles),
        email=record.email,
        created_at=record.created_at,
        updated_at=record.updated_at,
        deleted_at=record.deleted_at,
    )


def meta_view(record: UserRecord, now: datetime | None = None) -> MetaView:
    now = now or datetime.now(timezone.utc)
    state = state_of(record)
    return MetaView(
        **full_view(record).model_dump(),
        status=state.value,
        is_removed=state is UserState.REMOVED,
        account_age_days=max((now - record.created_at).days, 0),
    )


def project(
    record: UserRecord,
    caller: Caller,
    requested: ViewKind = ViewKind.FULL,
    now: datetime | None = None,
) -> SummaryView | FullView | MetaView:
    """Build the view of ``record`` that ``caller`` is entitled to.

    A Full request from a caller who neither owns the record nor holds a
    privileged role degrades to a Summary. Meta views carry operational
    data and are never degraded: non-Admin callers get ``Forbidden``.
    """

    if requested is ViewKind.META:
        if not caller.is_admin:
            logger.warning("Caller %s denied meta view of user %s", caller.id, record.id)
            raise Forbidden("Only administrators may view user metadata")
        return meta_view(record, now=now)
    if requested is ViewKind.FULL and can_view_full(caller, record):
        return full_view(record)
    return summary_view(record)
