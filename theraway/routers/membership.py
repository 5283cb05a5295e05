"""Owner-facing membership endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from theraway.domain.identity import Principal, Role
from theraway.routers.deps import get_lifecycle, require_principal
from theraway.routers.schemas import ApplyBody, account_payload, history_payload, lifecycle_payload
from theraway.services.lifecycle_service import AccountLifecycle

router = APIRouter(prefix="/membership", tags=["membership"])

owner_or_admin = require_principal(Role.THERAPIST, Role.CLINIC_OWNER, Role.ADMIN)


@router.get("/{target_type}/{entity_id}")
def get_account(
    target_type: str,
    entity_id: str,
    principal: Principal = Depends(owner_or_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    return {"status": "ok", "account": account_payload(lifecycle.get_account(principal, target_type, entity_id))}


@router.post("/{target_type}/{entity_id}/apply")
def apply(
    target_type: str,
    entity_id: str,
    body: ApplyBody,
    principal: Principal = Depends(require_principal(Role.THERAPIST, Role.CLINIC_OWNER)),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    result = lifecycle.apply(principal, target_type, entity_id, receipt_ref=body.receipt_ref, tier_name=body.tier_name)
    return lifecycle_payload(result)


@router.get("/{target_type}/{entity_id}/history")
def history(
    target_type: str,
    entity_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(owner_or_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    entries = lifecycle.history(principal, target_type, entity_id, limit=limit, offset=offset)
    return {"status": "ok", "entries": [history_payload(entry) for entry in entries]}
