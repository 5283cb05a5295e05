"""
Authentication and identity related use cases.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from theraway.core.claims import Claims, ClaimsCodec
from theraway.core.logging import get_logger
from theraway.core.security import hash_password, needs_rehash, verify_password
from theraway.domain.identity import Role, SELF_SIGNUP_ROLES, parse_role
from theraway.repositories.sql_repository import SQLRepository, account_type_for_role

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8
MAX_NAME_LENGTH = 255


class AuthError(Exception):
    """Base class for authentication-related exceptions."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RegistrationError(AuthError):
    pass


class AccountExistsError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    pass


@dataclass
class SessionResult:
    user_id: str
    name: str
    email: str
    role: Role
    token: str
    expires_at: int
    account_id: Optional[str] = None


@dataclass
class AuthService:
    """Handles signup and login; both end with a freshly issued session token."""

    codec: ClaimsCodec
    repository: Optional[SQLRepository] = None

    def __post_init__(self):
        if self.repository is None:
            self.repository = SQLRepository()

    # -------------------------------------- helpers --------------------------------------
    def _session_for(self, user) -> SessionResult:
        token = self.codec.issue(user_id=user.id, role=user.role, name=user.name, email=user.email)
        claims = self.codec.parse(token)
        expires_at = claims.expires_at if isinstance(claims, Claims) else 0
        account_id = None
        account_type = account_type_for_role(user.role)
        if account_type is not None:
            account = self.repository.get_account_for_owner(user.id, account_type)
            account_id = account.entity_id if account else None
        return SessionResult(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            token=token,
            expires_at=expires_at,
            account_id=account_id,
        )

    # -------------------------------------- signup --------------------------------------
    def signup(self, *, name: str, email: str, password: str, role: str | Role = Role.CLIENT) -> SessionResult:
        clean_name = (name or "").strip()
        if not clean_name:
            raise RegistrationError("Name is required.")
        if len(clean_name) > MAX_NAME_LENGTH:
            raise RegistrationError(f"Name must be at most {MAX_NAME_LENGTH} characters.")
        clean_email = (email or "").strip().lower()
        if not EMAIL_RE.match(clean_email):
            raise RegistrationError("A valid email is required.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise RegistrationError(f"Password too short. Use at least {MIN_PASSWORD_LENGTH} characters.")
        try:
            requested = parse_role(role)
        except ValueError as exc:
            raise RegistrationError(str(exc)) from None
        if requested not in SELF_SIGNUP_ROLES:
            raise RegistrationError("This role cannot be chosen at signup.")
        if self.repository.get_user_by_email(clean_email):
            raise AccountExistsError("An account with this email already exists.")

        try:
            user = self.repository.create_user(
                name=clean_name,
                email=clean_email,
                password_hash=hash_password(password),
                role=requested,
            )
        except IntegrityError:
            # lost a race with a concurrent signup for the same email
            raise AccountExistsError("An account with this email already exists.") from None
        logger.info("New %s account %s", requested.value, user.id)
        return self._session_for(user)

    # -------------------------------------- login --------------------------------------
    def login(self, *, email: str, password: str) -> SessionResult:
        user = self.repository.get_user_by_email(email)
        if not user or not verify_password(password or "", user.password_hash):
            logger.info("Failed login attempt")
            raise InvalidCredentialsError("Invalid email or password.")
        if needs_rehash(user.password_hash):
            self.repository.update_user_password(user.id, hash_password(password))
        return self._session_for(user)
