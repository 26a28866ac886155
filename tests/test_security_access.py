from __future__ import annotations

import pytest

from btccustody.domain.errors import CustodyError, UnauthorizedActorError
from btccustody.security import AuthorizedActor, Role, StaticRoleStore


def test_static_role_store_membership_is_case_insensitive() -> None:
    store = StaticRoleStore(admins=["Alice"], relayers=["relay-1"])

    assert store.has_role("alice", Role.ADMIN)
    assert store.has_role(" ALICE ", Role.ADMIN)
    assert not store.has_role("alice", Role.RELAYER)
    assert store.has_role("relay-1", Role.RELAYER)


def test_authorized_actor_rejects_missing_role() -> None:
    authorizer = AuthorizedActor(StaticRoleStore(admins=["alice"]))

    authorizer.require("alice", Role.ADMIN)
    with pytest.raises(UnauthorizedActorError) as exc_info:
        authorizer.require("mallory", Role.ADMIN)

    assert isinstance(exc_info.value, PermissionError)
    assert isinstance(exc_info.value, CustodyError)


def test_authorized_actor_rejects_empty_actor() -> None:
    authorizer = AuthorizedActor(StaticRoleStore(admins=[""]))

    with pytest.raises(UnauthorizedActorError):
        authorizer.require("", Role.ADMIN)
