from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask_jwt_extended import get_jwt, get_jwt_identity

from .errors import APIError


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str
    branch_id: str | None = None
    department_id: str | None = None


class AccessPolicy:
    """Role predicate shared by every service; built once from ``ADMIN_ROLES``."""

    def __init__(self, admin_roles: Iterable[str]) -> None:
        self.admin_roles = frozenset(role.strip().lower() for role in admin_roles if role and role.strip())

    def is_admin_role(self, role: str | None) -> bool:
        return (role or "").strip().lower() in self.admin_roles

    def is_admin(self, identity: Identity) -> bool:
        return self.is_admin_role(identity.role)

    def is_owner_or_admin(self, identity: Identity, created_by: str | None) -> bool:
        return self.is_admin(identity) or (created_by is not None and created_by == identity.user_id)


def _optional_claim(claims: dict, name: str) -> str | None:
    value = claims.get(name)
    if value in (None, ""):
        return None
    return str(value)


def current_identity() -> Identity:
    """Identity of the caller behind an already verified JWT."""
    subject = get_jwt_identity()
    if subject in (None, ""):
        raise APIError(401, "UNAUTHENTICATED", "Authentication required.")

    claims = get_jwt()
    return Identity(
        user_id=str(subject),
        role=str(claims.get("role") or "user"),
        branch_id=_optional_claim(claims, "branch_id"),
        department_id=_optional_claim(claims, "department_id"),
    )
