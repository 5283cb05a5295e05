"""
Moderation state machine for therapist and clinic accounts.

The functions here are pure: given the current account snapshot and the
requested event they either return a Transition (column changes plus the
ledger entry that must be written with them) or raise the rule that was
violated. Persistence and locking live in services.transactions.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from .errors import InvalidTransitionError, ValidationError
from .identity import Principal, Role

MAX_RECEIPT_REF_LENGTH = 512
MAX_NOTES_LENGTH = 4000

AWAITING_REVIEW_MESSAGE = "Application submitted, awaiting admin review."
APPROVED_MESSAGE = "Membership approved."
REJECTED_MESSAGE = "Membership rejected."


class ModerationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    LIVE = "live"
    REJECTED = "rejected"


STATUS_MESSAGES = {
    ModerationStatus.PENDING_APPROVAL: AWAITING_REVIEW_MESSAGE,
    ModerationStatus.LIVE: APPROVED_MESSAGE,
    ModerationStatus.REJECTED: REJECTED_MESSAGE,
}


class TargetType(str, Enum):
    THERAPIST = "THERAPIST"
    CLINIC = "CLINIC"

    @property
    def owner_role(self) -> Role:
        return Role.THERAPIST if self is TargetType.THERAPIST else Role.CLINIC_OWNER

    @property
    def history_prefix(self) -> str:
        return "mhist_ther_" if self is TargetType.THERAPIST else "mhist_clinic_"


class HistoryAction(str, Enum):
    APPLIED = "applied"
    APPROVED = "approved"
    REJECTED = "rejected"
    STATUS_CHANGED = "status_changed"
    RENEWED = "renewed"


def parse_status(value: str | ModerationStatus | None) -> ModerationStatus:
    if isinstance(value, ModerationStatus):
        return value
    try:
        return ModerationStatus((value or "").strip())
    except ValueError:
        raise ValueError(f"Unknown moderation status: {value!r}") from None


def parse_target_type(value: str | TargetType | None) -> TargetType:
    if isinstance(value, TargetType):
        return value
    try:
        return TargetType((value or "").strip().upper())
    except ValueError:
        raise ValueError(f"Unknown target type: {value!r}") from None


@dataclass(frozen=True)
class MembershipInfo:
    application_date: Optional[datetime] = None
    payment_receipt_ref: Optional[str] = None
    status_message: Optional[str] = None
    renewal_date: Optional[datetime] = None
    tier_name: Optional[str] = None


@dataclass(frozen=True)
class Account:
    """Read-only snapshot of a therapist or clinic account."""

    entity_id: str
    target_type: TargetType
    owner_user_id: str
    status: ModerationStatus
    is_verified: bool = False
    admin_notes: Optional[str] = None
    membership: MembershipInfo = field(default_factory=MembershipInfo)
    version: int = 1

    @property
    def is_listed(self) -> bool:
        """Only live accounts are publicly visible."""
        return self.status is ModerationStatus.LIVE


@dataclass(frozen=True)
class LedgerDraft:
    action: HistoryAction
    description: str
    details: Mapping[str, Any]
    actor_user_id: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    """Column values to write on the account row, plus the ledger entry that goes with them."""

    changes: Mapping[str, Any]
    ledger: Optional[LedgerDraft] = None


def add_years(moment: datetime, years: int = 1) -> datetime:
    """Same calendar date `years` later; 29 Feb falls back to 28 Feb."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    value = notes.strip()
    if len(value) > MAX_NOTES_LENGTH:
        raise ValidationError(f"Admin notes must be at most {MAX_NOTES_LENGTH} characters.")
    return value


def _receipt_label(receipt_ref: str) -> str:
    path = urlparse(receipt_ref).path or receipt_ref
    return posixpath.basename(path) or receipt_ref


def _decision_details(account: Account, new_status: ModerationStatus, admin: Principal, notes: Optional[str]) -> dict:
    return {
        "previousStatus": account.status.value,
        "newStatus": new_status.value,
        "adminId": admin.user_id,
        "adminName": admin.display_name,
        "notes": notes,
    }


# ----------------------------------------------------------------- owner events
def plan_apply(
    account: Account,
    *,
    receipt_ref: Optional[str],
    tier_name: str,
    fee: Optional[float],
    applied_by: str,
    now: datetime,
) -> Transition:
    receipt = (receipt_ref or "").strip()
    if not receipt:
        raise ValidationError("A payment receipt reference is required.")
    if len(receipt) > MAX_RECEIPT_REF_LENGTH:
        raise ValidationError(f"Payment receipt reference must be at most {MAX_RECEIPT_REF_LENGTH} characters.")
    tier = (tier_name or "").strip()
    if not tier:
        raise ValidationError("A membership tier is required.")

    if account.status is ModerationStatus.PENDING_APPROVAL:
        raise InvalidTransitionError("An application for this account is already awaiting review.")
    if account.status is ModerationStatus.LIVE:
        raise InvalidTransitionError("Cannot apply for an account that is already live.")

    changes = {
        "status": ModerationStatus.PENDING_APPROVAL,
        "membership_application_date": now,
        "membership_payment_receipt_ref": receipt,
        "membership_status_message": AWAITING_REVIEW_MESSAGE,
        "membership_tier_name": tier,
    }
    ledger = LedgerDraft(
        action=HistoryAction.APPLIED,
        description=f"Applied for {tier}. Receipt: {_receipt_label(receipt)}",
        details={
            "previousStatus": account.status.value,
            "newStatus": ModerationStatus.PENDING_APPROVAL.value,
            "tier": tier,
            "receiptRef": receipt,
            "fee": fee,
            "appliedBy": applied_by,
        },
        actor_user_id=applied_by,
    )
    return Transition(changes=changes, ledger=ledger)


# ----------------------------------------------------------------- admin events
def plan_approve(account: Account, *, admin: Principal, notes: Optional[str], now: datetime) -> Transition:
    if account.status is not ModerationStatus.PENDING_APPROVAL:
        raise InvalidTransitionError(
            f"Cannot approve an account that is not pending review (current status: {account.status.value})."
        )
    clean = _clean_notes(notes)
    changes: dict[str, Any] = {
        "status": ModerationStatus.LIVE,
        "membership_status_message": APPROVED_MESSAGE,
    }
    if account.membership.renewal_date is None:
        changes["membership_renewal_date"] = add_years(now)
    if clean is not None:
        changes["admin_notes"] = clean
    ledger = LedgerDraft(
        action=HistoryAction.APPROVED,
        description="Membership approved by admin.",
        details=_decision_details(account, ModerationStatus.LIVE, admin, clean),
        actor_user_id=admin.user_id,
    )
    return Transition(changes=changes, ledger=ledger)


def plan_reject(account: Account, *, admin: Principal, notes: Optional[str], now: datetime) -> Transition:
    if account.status is not ModerationStatus.PENDING_APPROVAL:
        raise InvalidTransitionError(
            f"Cannot reject an account that is not pending review (current status: {account.status.value})."
        )
    clean = _clean_notes(notes)
    changes: dict[str, Any] = {
        "status": ModerationStatus.REJECTED,
        "membership_status_message": REJECTED_MESSAGE,
    }
    if clean is not None:
        changes["admin_notes"] = clean
    ledger = LedgerDraft(
        action=HistoryAction.REJECTED,
        description="Membership rejected by admin.",
        details=_decision_details(account, ModerationStatus.REJECTED, admin, clean),
        actor_user_id=admin.user_id,
    )
    return Transition(changes=changes, ledger=ledger)


def plan_set_status(
    account: Account,
    *,
    admin: Principal,
    status: ModerationStatus,
    notes: Optional[str],
    now: datetime,
) -> Transition:
    """Direct override used for corrections. Any state may move to any state."""
    clean = _clean_notes(notes)
    changes: dict[str, Any] = {"status": status}
    if clean is not None:
        changes["admin_notes"] = clean
    if status is account.status:
        return Transition(changes=changes)

    if status is ModerationStatus.LIVE and account.membership.renewal_date is None:
        changes["membership_renewal_date"] = add_years(now)
    changes["membership_status_message"] = STATUS_MESSAGES.get(status)
    action = {
        ModerationStatus.LIVE: HistoryAction.APPROVED,
        ModerationStatus.REJECTED: HistoryAction.REJECTED,
    }.get(status, HistoryAction.STATUS_CHANGED)
    ledger = LedgerDraft(
        action=action,
        description=f"Status changed from {account.status.value} to {status.value} by admin.",
        details=_decision_details(account, status, admin, clean),
        actor_user_id=admin.user_id,
    )
    return Transition(changes=changes, ledger=ledger)


def plan_annotate(account: Account, *, notes: Optional[str], verified: Optional[bool]) -> Transition:
    """Metadata-only update; never touches status, so no ledger entry."""
    changes: dict[str, Any] = {}
    clean = _clean_notes(notes)
    if clean is not None:
        changes["admin_notes"] = clean
    if verified is not None:
        changes["is_verified"] = bool(verified)
    return Transition(changes=changes)


def plan_renew(account: Account, *, admin: Principal, now: datetime) -> Transition:
    """Admin-initiated renewal: the only event allowed to move an existing renewal date."""
    if account.status is not ModerationStatus.LIVE:
        raise InvalidTransitionError(
            f"Cannot renew a membership that is not live (current status: {account.status.value})."
        )
    current = account.membership.renewal_date
    base = current if current is not None and current > now else now
    renewal = add_years(base)
    ledger = LedgerDraft(
        action=HistoryAction.RENEWED,
        description=f"Membership renewed until {renewal.date().isoformat()}.",
        details={
            "previousRenewalDate": current.isoformat() if current else None,
            "newRenewalDate": renewal.isoformat(),
            "adminId": admin.user_id,
            "adminName": admin.display_name,
        },
        actor_user_id=admin.user_id,
    )
    return Transition(changes={"membership_renewal_date": renewal}, ledger=ledger)
