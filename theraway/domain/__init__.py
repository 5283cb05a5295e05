"""Domain types and pure rules (no I/O)."""

from .errors import (
    ErrorKind,
    LifecycleError,
    ForbiddenError,
    InvalidTransitionError,
    ValidationError,
    AccountNotFoundError,
    PersistenceError,
    ConcurrentUpdateError,
)
from .identity import Principal, Role, parse_role
from .moderation import (
    Account,
    HistoryAction,
    LedgerDraft,
    MembershipInfo,
    ModerationStatus,
    TargetType,
    Transition,
    parse_status,
    parse_target_type,
)

__all__ = [
    "ErrorKind",
    "LifecycleError",
    "ForbiddenError",
    "InvalidTransitionError",
    "ValidationError",
    "AccountNotFoundError",
    "PersistenceError",
    "ConcurrentUpdateError",
    "Principal",
    "Role",
    "parse_role",
    "Account",
    "HistoryAction",
    "LedgerDraft",
    "MembershipInfo",
    "ModerationStatus",
    "TargetType",
    "Transition",
    "parse_status",
    "parse_target_type",
]
