"""Role checks for lifecycle operations.

The lifecycle only needs a boolean "actor holds role" predicate; any role
store (static ACL, IAM lookup, signed capability) can back it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from btccustody.domain.errors import UnauthorizedActorError


class Role(StrEnum):
    ADMIN = "ADMIN"
    RELAYER = "RELAYER"


class RoleStore(Protocol):
    def has_role(self, actor: str, role: Role) -> bool: ...


class StaticRoleStore:
    def __init__(
        self,
        *,
        admins: Iterable[str] = (),
        relayers: Iterable[str] = (),
    ) -> None:
        self._members: dict[Role, frozenset[str]] = {
            Role.ADMIN: frozenset(_normalize_actor(a) for a in admins),
            Role.RELAYER: frozenset(_normalize_actor(r) for r in relayers),
        }

    def has_role(self, actor: str, role: Role) -> bool:
        return _normalize_actor(actor) in self._members.get(role, frozenset())


@dataclass(frozen=True)
class AuthorizedActor:
    role_store: RoleStore

    def require(self, actor: str, role: Role) -> None:
        if not actor or not self.role_store.has_role(actor, role):
            raise UnauthorizedActorError(f"actor {actor!r} lacks role {role.value}")


def _normalize_actor(actor: str) -> str:
    return str(actor).strip().lower()
