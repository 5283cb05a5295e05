"""
Signed session tokens.

Token shape: {iss, aud, iat, exp, data: {userId, email, role, name}}, signed
with a process-wide symmetric secret. `parse` never raises; it returns either
the decoded Claims or a ClaimsFailure whose `reason` is for logs only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import jwt

from theraway.domain.identity import Role, parse_role

from .config import Settings, get_settings

SYMMETRIC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})


class ClaimsErrorKind(str, Enum):
    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class Claims:
    user_id: str
    role: Role
    name: str
    email: str = ""
    issued_at: int = 0
    expires_at: int = 0


@dataclass(frozen=True)
class ClaimsFailure:
    kind: ClaimsErrorKind
    reason: str


class ClaimsCodec:
    """
    Issue and verify session tokens.

    Example:
        codec = ClaimsCodec.from_settings()
        token = codec.issue(user_id="user_1", role=Role.CLIENT, name="Ana", email="ana@x.io")
        result = codec.parse(token)
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        default_ttl_seconds: int = 604800,
        leeway_seconds: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise RuntimeError("JWT_SECRET must be configured to issue or verify session tokens.")
        if algorithm not in SYMMETRIC_ALGORITHMS:
            raise RuntimeError(f"Unsupported JWT algorithm {algorithm!r}; expected one of {sorted(SYMMETRIC_ALGORITHMS)}.")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.default_ttl_seconds = default_ttl_seconds
        self.leeway_seconds = leeway_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, *, clock: Callable[[], float] = time.time) -> "ClaimsCodec":
        settings = settings or get_settings()
        return cls(
            settings.jwt_secret,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.jwt_algorithm,
            default_ttl_seconds=settings.jwt_ttl_seconds,
            leeway_seconds=settings.jwt_leeway_seconds,
            clock=clock,
        )

    def now(self) -> int:
        return int(self._clock())

    def issue(self, *, user_id: str, role: Role, name: str, email: str = "", ttl_seconds: Optional[int] = None) -> str:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl < 0:
            raise ValueError("ttl_seconds must not be negative")
        issued_at = self.now()
        payload = {
            "iss": self.issuer,
            "aud": self.audience,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "data": {
                "userId": user_id,
                "email": email,
                "role": parse_role(role).value,
                "name": name,
            },
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def parse(self, token: str) -> Claims | ClaimsFailure:
        # Structure first, then the time window (expiry wins over signature), then the signature.
        try:
            unverified = jwt.decode(token or "", options={"verify_signature": False})
        except jwt.DecodeError as exc:
            return ClaimsFailure(ClaimsErrorKind.MALFORMED, f"cannot decode token: {exc}")

        now = self.now()
        exp, iat = unverified.get("exp"), unverified.get("iat")
        if not isinstance(exp, (int, float)) or not isinstance(iat, (int, float)):
            return ClaimsFailure(ClaimsErrorKind.INVALID, "token is missing numeric iat/exp claims")
        if now >= exp + self.leeway_seconds:
            return ClaimsFailure(ClaimsErrorKind.EXPIRED, f"token expired at {int(exp)}")
        if now + self.leeway_seconds < iat:
            return ClaimsFailure(ClaimsErrorKind.NOT_YET_VALID, f"token issued in the future ({int(iat)})")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={
                    "require": ["iss", "aud", "iat", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidSignatureError as exc:
            return ClaimsFailure(ClaimsErrorKind.SIGNATURE_INVALID, f"signature check failed: {exc}")
        except jwt.InvalidTokenError as exc:
            return ClaimsFailure(ClaimsErrorKind.INVALID, f"{type(exc).__name__}: {exc}")

        return self._claims_from_payload(payload)

    def _claims_from_payload(self, payload: dict) -> Claims | ClaimsFailure:
        data = payload.get("data")
        if not isinstance(data, dict):
            return ClaimsFailure(ClaimsErrorKind.INVALID, "token payload has no data object")
        user_id = data.get("userId")
        if not isinstance(user_id, str) or not user_id:
            return ClaimsFailure(ClaimsErrorKind.INVALID, "token payload has no userId")
        try:
            role = parse_role(data.get("role"))
        except ValueError as exc:
            return ClaimsFailure(ClaimsErrorKind.INVALID, str(exc))
        name = data.get("name", "User")
        return Claims(
            user_id=user_id,
            role=role,
            name=name if isinstance(name, str) else "User",
            email=str(data.get("email") or ""),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )
