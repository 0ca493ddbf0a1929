"""Actor identities for anything that acts on, or is told about, money movement.

Users and admins are identified by their ids. The platform itself acts as
``SYSTEM`` (automated corrections) and the admin team is addressed as a group
through ``ADMIN_DESK``, so no code path has to invent a magic user id.
"""

from dataclasses import dataclass
from enum import Enum


class ActorKind(Enum):
    USER = "user"
    ADMIN = "admin"
    ADMIN_DESK = "admin_desk"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    kind: ActorKind
    id: str

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        return cls(kind=ActorKind.USER, id=str(user_id))

    @classmethod
    def admin(cls, admin_id: str) -> "Actor":
        return cls(kind=ActorKind.ADMIN, id=str(admin_id))

    @property
    def is_system(self) -> bool:
        return self.kind == ActorKind.SYSTEM

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


SYSTEM = Actor(kind=ActorKind.SYSTEM, id="platform")
ADMIN_DESK = Actor(kind=ActorKind.ADMIN_DESK, id="withdrawals")
AUDITOR = Actor(kind=ActorKind.SYSTEM, id="auditor")
