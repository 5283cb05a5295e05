"""Roles and the per-request authenticated identity."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    CLIENT = "CLIENT"
    THERAPIST = "THERAPIST"
    CLINIC_OWNER = "CLINIC_OWNER"
    ADMIN = "ADMIN"


SELF_SIGNUP_ROLES = frozenset({Role.CLIENT, Role.THERAPIST, Role.CLINIC_OWNER})


def parse_role(value: str | Role | None) -> Role:
    """Convert a raw role value into a Role. Raises ValueError for anything outside the closed set."""
    if isinstance(value, Role):
        return value
    try:
        return Role((value or "").strip())
    except ValueError:
        raise ValueError(f"Unknown role: {value!r}") from None


@dataclass(frozen=True)
class Principal:
    """Identity derived from a validated session token; lives for one request only."""

    user_id: str
    role: Role
    display_name: str

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN
