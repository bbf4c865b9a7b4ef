from __future__ import annotations

from dataclasses import dataclass

GRADER_ROLES = frozenset({"instructor", "admin"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller, built from the bearer token's claims.

    user_id: JWT ``sub``; doubles as the learner id on every record.
    roles: platform roles (user, instructor, admin).
    name: display name, snapshotted onto certificates at issuance.
    """

    user_id: str
    roles: frozenset[str]
    name: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str] | frozenset[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles

    def is_grader(self) -> bool:
        return self.has_any_role(GRADER_ROLES)
