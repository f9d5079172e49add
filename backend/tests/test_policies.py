from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from userdir.core.exceptions import AlreadyRemoved, Forbidden, InvalidIdentifier, NotRemoved
from userdir.core.identifiers import is_identifier, new_identifier, validate_identifier
from userdir.schemas.user import Caller, FullView, MetaView, Role, SummaryView, UserRecord, ViewKind
from userdir.services import lifecycle
from userdir.services.lifecycle import Transition, UserState, next_state, state_of
from userdir.services.views import project

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_record(**overrides) -> UserRecord:
    data = {
        "id": new_identifier(),
        "username": "alice",
        "email": "alice@example.com",
        "password_hash": "secret-hash",
        "roles": [Role.USER],
        "created_at": CREATED,
        "updated_at": CREATED,
    }
    data.update(overrides)
    return UserRecord(**data)


def test_identifier_grammar() -> None:
    assert is_identifier(new_identifier())
    assert validate_identifier("0F8FAD5B-D9CB-469F-A165-70867728950E") == "0f8fad5b-d9cb-469f-a165-70867728950e"
    with pytest.raises(InvalidIdentifier):
        validate_identifier("0f8fad5b-d9cb-469f-a165")


def test_state_machine() -> None:
    assert state_of(make_record()) is UserState.ACTIVE
    assert state_of(make_record(deleted_at=CREATED)) is UserState.REMOVED

    assert next_state(UserState.ACTIVE, Transition.REMOVE) is UserState.REMOVED
    assert next_state(UserState.REMOVED, Transition.RESTORE) is UserState.ACTIVE
    with pytest.raises(AlreadyRemoved):
        next_state(UserState.REMOVED, Transition.REMOVE)
    with pytest.raises(NotRemoved):
        next_state(UserState.ACTIVE, Transition.RESTORE)


def test_naive_timestamps_are_read_as_utc() -> None:
    record = make_record(created_at=datetime(2024, 1, 1), updated_at=datetime(2024, 1, 2))

    assert record.created_at.tzinfo is timezone.utc
    assert record.updated_at.tzinfo is timezone.utc


def test_authorization_rules() -> None:
    target = new_identifier()
    owner = Caller(id=target, roles=[Role.USER])
    admin = Caller(id=new_identifier(), roles=[Role.ADMIN])
    moderator = Caller(id=new_identifier(), roles=[Role.MODERATOR])

    assert lifecycle.authorize_remove(owner, target) is owner
    assert lifecycle.authorize_remove(admin, target) is admin
    assert lifecycle.authorize_update(owner, target.upper()) is owner
    assert lifecycle.authorize_restore(admin, target) is admin

    with pytest.raises(Forbidden):
        lifecycle.authorize_remove(moderator, target)
    with pytest.raises(Forbidden):
        lifecycle.authorize_restore(owner, target)
    with pytest.raises(Forbidden):
        lifecycle.authorize_update(owner, target, changes_roles=True)
    with pytest.raises(Forbidden):
        lifecycle.authorize_update(None, target)

    lifecycle.authorize_create(None, [Role.USER], open_registration=True)
    with pytest.raises(Forbidden):
        lifecycle.authorize_create(None, [Role.USER], open_registration=False)
    with pytest.raises(Forbidden):
        lifecycle.authorize_create(owner, [Role.USER, Role.ADMIN], open_registration=True)


def test_projection_degrades_full_to_summary() -> None:
    record = make_record()
    stranger = Caller(id=new_identifier(), roles=[Role.USER])

    view = project(record, stranger, ViewKind.FULL)
    assert type(view) is SummaryView
    assert view.model_dump() == {"id": record.id, "username": "alice", "roles": [Role.USER]}


@pytest.mark.parametrize("roles", [[Role.ADMIN], [Role.MODERATOR]])
def test_projection_full_for_privileged(roles) -> None:
    record = make_record()

    view = project(record, Caller(id=new_identifier(), roles=roles), ViewKind.FULL)
    assert type(view) is FullView
    assert "password_hash" not in view.model_dump()


def test_projection_full_for_owner() -> None:
    record = make_record()

    assert type(project(record, Caller(id=record.id, roles=[Role.USER]))) is FullView


def test_meta_view_fails_closed() -> None:
    record = make_record()

    for roles in ([Role.USER], [Role.MODERATOR]):
        with pytest.raises(Forbidden):
            project(record, Caller(id=record.id, roles=roles), ViewKind.META)


def test_meta_view_for_admin() -> None:
    record = make_record(deleted_at=CREATED + timedelta(days=3), updated_at=CREATED + timedelta(days=3))
    admin = Caller(id=new_identifier(), roles=[Role.ADMIN])

    view = project(record, admin, ViewKind.META, now=CREATED + timedelta(days=10, hours=5))
    assert isinstance(view, MetaView)
    assert view.account_age_days == 10
    assert view.status == "removed"
    assert view.is_removed is True
    assert "password_hash" not in view.model_dump()
