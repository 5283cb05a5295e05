"""Access policy: who may act on what."""
from __future__ import annotations

from typing import Iterable, Optional

from theraway.domain.errors import ForbiddenError
from theraway.domain.identity import Principal, Role


class AuthorizationGuard:
    """
    Single "role-in-set, and self-or-admin" rule used by every endpoint.

    ADMIN always passes. Anyone else needs a role from `required_roles` and,
    when `resource_owner_id` is given, to be that owner.
    """

    def allow(
        self,
        principal: Principal,
        required_roles: Iterable[Role],
        resource_owner_id: Optional[str] = None,
    ) -> bool:
        if principal.role is Role.ADMIN:
            return True
        if principal.role not in frozenset(required_roles):
            return False
        if resource_owner_id is not None and principal.user_id != resource_owner_id:
            return False
        return True

    def require(
        self,
        principal: Principal,
        required_roles: Iterable[Role],
        resource_owner_id: Optional[str] = None,
        *,
        message: str = "You are not allowed to perform this action.",
    ) -> None:
        if not self.allow(principal, required_roles, resource_owner_id):
            raise ForbiddenError(message)

    def require_owner(self, principal: Principal, owner_role: Role, owner_id: str) -> None:
        """Owner-only events (membership applications); no admin bypass."""
        if principal.role is not owner_role or principal.user_id != owner_id:
            raise ForbiddenError("Only the account owner can perform this action.")
