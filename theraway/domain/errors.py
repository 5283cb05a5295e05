"""Error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INVALID_TRANSITION = "invalid_transition"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERSISTENCE = "persistence"
    CONFLICT = "conflict"


class LifecycleError(Exception):
    """Base class for account-lifecycle failures. `message` is safe to show to the caller."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ForbiddenError(LifecycleError):
    kind = ErrorKind.FORBIDDEN


class InvalidTransitionError(LifecycleError):
    kind = ErrorKind.INVALID_TRANSITION


class ValidationError(LifecycleError):
    kind = ErrorKind.VALIDATION


class AccountNotFoundError(LifecycleError):
    kind = ErrorKind.NOT_FOUND


class PersistenceError(LifecycleError):
    kind = ErrorKind.PERSISTENCE


class ConcurrentUpdateError(LifecycleError):
    kind = ErrorKind.CONFLICT
