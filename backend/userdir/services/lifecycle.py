"""Lifecycle state machine and authorization rules for user records."""
from __future__ import annotations

import logging
from enum import Enum

from userdir.core.exceptions import AlreadyRemoved, Forbidden, NotRemoved
from userdir.schemas.user import PRIVILEGED_ROLES, Caller, Role, UserRecord

logger = logging.getLogger(__name__)


class UserState(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class Transition(str, Enum):
    REMOVE = "remove"
    RESTORE = "restore"


# (from_state, transition) -> to_state
_TRANSITIONS: dict[tuple[UserState, Transition], UserState] = {
    (UserState.ACTIVE, Transition.REMOVE): UserState.REMOVED,
    (UserState.REMOVED, Transition.RESTORE): UserState.ACTIVE,
}


def state_of(record: UserRecord) -> UserState:
    return UserState.REMOVED if record.deleted_at is not None else UserState.ACTIVE


def next_state(current: UserState, transition: Transition) -> UserState:
    """Return the state reached by applying ``transition`` to ``current``.

    Raises AlreadyRemoved or NotRemoved when the transition is not legal
    from ``current``.
    """

    target = _TRANSITIONS.get((current, transition))
    if target is None:
        if transition is Transition.REMOVE:
            raise AlreadyRemoved()
        raise NotRemoved()
    return target


def _deny(caller: Caller | None, action: str, target: str | None = None) -> Forbidden:
    logger.warning("Caller %s denied %s on user %s", caller.id if caller else "anonymous", action, target or "-")
    return Forbidden(f"Not allowed to {action} this user")


def require_authenticated(caller: Caller | None) -> Caller:
    if caller is None:
        raise _deny(caller, "access")
    return caller


def authorize_create(caller: Caller | None, requested_roles: list[Role], open_registration: bool) -> None:
    """Registration is open unless disabled; privileged roles always need an Admin."""

    is_admin = caller is not None and caller.is_admin
    if not open_registration and not is_admin:
        raise _deny(caller, "create")
    if any(role in PRIVILEGED_ROLES for role in requested_roles) and not is_admin:
        raise _deny(caller, "grant privileged roles to")


def authorize_update(caller: Caller | None, target_id: str, changes_roles: bool = False) -> Caller:
    caller = require_authenticated(caller)
    if changes_roles and not caller.is_admin:
        raise _deny(caller, "change roles of", target_id)
    if not (caller.is_admin or caller.owns(target_id)):
        raise _deny(caller, "update", target_id)
    return caller


def authorize_remove(caller: Caller | None, target_id: str) -> Caller:
    caller = require_authenticated(caller)
    if not (caller.is_admin or caller.owns(target_id)):
        raise _deny(caller, "remove", target_id)
    return caller


def require_admin(caller: Caller | None, action: str, target_id: str | None = None) -> Caller:
    caller = require_authenticated(caller)
    if not caller.is_admin:
        raise _deny(caller, action, target_id)
    return caller


def authorize_restore(caller: Caller | None, target_id: str) -> Caller:
    return require_admin(caller, "restore", target_id)


def authorize_include_removed(caller: Caller) -> None:
    require_admin(caller, "list removed users")
