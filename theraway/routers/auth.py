from __future__ import annotations

from fastapi import APIRouter, Depends

from theraway.routers.deps import get_auth_service
from theraway.routers.schemas import LoginBody, SignupBody, session_payload
from theraway.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", status_code=201)
def signup(body: SignupBody, service: AuthService = Depends(get_auth_service)):
    result = service.signup(name=body.name, email=body.email, password=body.password, role=body.role)
    return session_payload(result)


@router.post("/login")
def login(body: LoginBody, service: AuthService = Depends(get_auth_service)):
    return session_payload(service.login(email=body.email, password=body.password))
