"""Request bodies and response payloads for the JSON API."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from theraway.domain.moderation import Account
from theraway.services.auth_service import SessionResult
from theraway.services.ledger import HistoryEntry
from theraway.services.lifecycle_service import LifecycleResult


class SignupBody(BaseModel):
    name: str
    email: str
    password: str
    role: str = "CLIENT"


class LoginBody(BaseModel):
    email: str
    password: str


class ApplyBody(BaseModel):
    receipt_ref: Optional[str] = None
    tier_name: Optional[str] = None


class DecisionBody(BaseModel):
    notes: Optional[str] = None


class StatusBody(BaseModel):
    status: str
    notes: Optional[str] = None


class AnnotateBody(BaseModel):
    notes: Optional[str] = None
    verified: Optional[bool] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def session_payload(result: SessionResult) -> dict:
    return {
        "status": "ok",
        "token": result.token,
        "expiresAt": result.expires_at,
        "user": {
            "id": result.user_id,
            "name": result.name,
            "email": result.email,
            "role": result.role.value,
        },
        "accountId": result.account_id,
    }


def account_payload(account: Account) -> dict:
    membership = account.membership
    return {
        "entityId": account.entity_id,
        "targetType": account.target_type.value,
        "ownerUserId": account.owner_user_id,
        "status": account.status.value,
        "isListed": account.is_listed,
        "isVerified": account.is_verified,
        "adminNotes": account.admin_notes,
        "membership": {
            "applicationDate": _iso(membership.application_date),
            "paymentReceiptRef": membership.payment_receipt_ref,
            "statusMessage": membership.status_message,
            "renewalDate": _iso(membership.renewal_date),
            "tierName": membership.tier_name,
        },
    }


def history_payload(entry: HistoryEntry) -> dict:
    return {
        "id": entry.id,
        "targetId": entry.target_id,
        "targetType": entry.target_type.value,
        "action": entry.action.value,
        "actionDescription": entry.action_description,
        "details": dict(entry.details),
        "actorUserId": entry.actor_user_id,
        "actionDate": _iso(entry.action_date),
    }


def lifecycle_payload(result: LifecycleResult) -> dict:
    return {
        "status": "ok",
        "outcome": result.outcome.value,
        "account": account_payload(result.account),
        "historyEntry": history_payload(result.entry) if result.entry else None,
    }
