from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller extracted from a validated bearer JWT.

    user_id: the token subject, used as the learner's UserId everywhere
    roles:   platform roles carried in the token (user, admin)
    name:    optional display name claim, used as the certificate name
    """

    user_id: str
    roles: frozenset[str]
    name: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def is_platform_admin(self) -> bool:
        return "admin" in self.roles
