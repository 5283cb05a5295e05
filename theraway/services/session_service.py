"""Session authentication: Authorization header -> Principal."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from theraway.core.claims import Claims, ClaimsCodec, ClaimsErrorKind
from theraway.core.logging import get_logger
from theraway.domain.identity import Principal, Role

logger = get_logger(__name__)

BEARER_SCHEME = "bearer"


class AuthFailureKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AuthFailure:
    """
    Why a request could not be authenticated.

    `reason` is safe to return to the caller; `claims_error` and the log line
    carry the specifics.
    """

    kind: AuthFailureKind
    reason: str
    claims_error: Optional[ClaimsErrorKind] = None


_CLAIMS_REASONS = {
    ClaimsErrorKind.MALFORMED: "token malformed",
    ClaimsErrorKind.SIGNATURE_INVALID: "token signature invalid",
    ClaimsErrorKind.EXPIRED: "token expired",
    ClaimsErrorKind.NOT_YET_VALID: "token not yet valid",
    ClaimsErrorKind.INVALID: "token invalid",
}


class SessionAuthenticator:
    """Validates bearer tokens and enforces the per-endpoint role set."""

    def __init__(self, codec: ClaimsCodec):
        self.codec = codec

    def authenticate(
        self,
        raw_header: Optional[str],
        required_roles: Optional[Iterable[Role]] = None,
    ) -> Principal | AuthFailure:
        """
        Resolve the request's Authorization header.

        `required_roles=None` accepts any authenticated role; an empty set accepts none.
        """
        header = (raw_header or "").strip()
        if not header:
            return AuthFailure(AuthFailureKind.UNAUTHENTICATED, "header missing")

        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != BEARER_SCHEME or not token:
            return AuthFailure(AuthFailureKind.UNAUTHENTICATED, "bad scheme")

        result = self.codec.parse(token)
        if not isinstance(result, Claims):
            logger.info("Rejected session token (%s): %s", result.kind.value, result.reason)
            return AuthFailure(
                AuthFailureKind.UNAUTHENTICATED,
                _CLAIMS_REASONS[result.kind],
                claims_error=result.kind,
            )

        if required_roles is None:
            return Principal(user_id=result.user_id, role=result.role, display_name=result.name)

        roles = frozenset(required_roles)
        if result.role not in roles:
            logger.info(
                "Role %s not allowed (required: %s) for user %s",
                result.role.value,
                ",".join(sorted(role.value for role in roles)) or "none",
                result.user_id,
            )
            return AuthFailure(AuthFailureKind.FORBIDDEN, "role not allowed")

        return Principal(user_id=result.user_id, role=result.role, display_name=result.name)
