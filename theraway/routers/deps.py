"""Shared request dependencies: services from app.state and the bearer principal."""
from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from theraway.domain.identity import Principal, Role
from theraway.services.auth_service import AuthService
from theraway.services.lifecycle_service import AccountLifecycle
from theraway.services.session_service import AuthFailure, AuthFailureKind, SessionAuthenticator


def get_lifecycle(request: Request) -> AccountLifecycle:
    return request.app.state.lifecycle


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def error_body(kind: str, message: str) -> dict:
    return {"status": "error", "kind": kind, "message": message}


def _raise_for(failure: AuthFailure) -> None:
    if failure.kind is AuthFailureKind.FORBIDDEN:
        raise HTTPException(status_code=403, detail=error_body("forbidden", "Your role cannot use this endpoint."))
    raise HTTPException(
        status_code=401,
        detail=error_body("unauthenticated", f"Authentication required ({failure.reason})."),
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_principal(*roles: Role):
    """
    Dependency factory: `Depends(require_principal(Role.ADMIN))`.

    With no roles any authenticated user passes.
    """
    allowed = frozenset(roles)

    def _dependency(request: Request, authorization: Optional[str] = Header(default=None)) -> Principal:
        authenticator: SessionAuthenticator = request.app.state.authenticator
        result = authenticator.authenticate(authorization, allowed or None)
        if isinstance(result, AuthFailure):
            _raise_for(result)
        return result

    return _dependency
