"""Admin moderation endpoints. Every route requires the ADMIN role."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from theraway.domain.identity import Principal, Role
from theraway.routers.deps import get_lifecycle, require_principal
from theraway.routers.schemas import AnnotateBody, DecisionBody, StatusBody, lifecycle_payload
from theraway.services.lifecycle_service import AccountLifecycle

router = APIRouter(prefix="/admin/accounts", tags=["admin"])

admin_only = require_principal(Role.ADMIN)


@router.post("/{target_type}/{entity_id}/approve")
def approve(
    target_type: str,
    entity_id: str,
    body: DecisionBody,
    principal: Principal = Depends(admin_only),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    return lifecycle_payload(lifecycle.approve(principal, target_type, entity_id, notes=body.notes))


@router.post("/{target_type}/{entity_id}/reject")
def reject(
    target_type: str,
    entity_id: str,
    body: DecisionBody,
    principal: Principal = Depends(admin_only),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    return lifecycle_payload(lifecycle.reject(principal, target_type, entity_id, notes=body.notes))


@router.post("/{target_type}/{entity_id}/status")
def set_status(
    target_type: str,
    entity_id: str,
    body: StatusBody,
    principal: Principal = Depends(admin_only),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    result = lifecycle.admin_set_status(principal, target_type, entity_id, body.status, notes=body.notes)
    return lifecycle_payload(result)


@router.post("/{target_type}/{entity_id}/annotate")
def annotate(
    target_type: str,
    entity_id: str,
    body: AnnotateBody,
    principal: Principal = Depends(admin_only),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    result = lifecycle.admin_annotate(principal, target_type, entity_id, notes=body.notes, verified=body.verified)
    return lifecycle_payload(result)


@router.post("/{target_type}/{entity_id}/renew")
def renew(
    target_type: str,
    entity_id: str,
    principal: Principal = Depends(admin_only),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    return lifecycle_payload(lifecycle.renew(principal, target_type, entity_id))
