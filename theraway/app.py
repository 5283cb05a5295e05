"""
FastAPI application factory.

Run with: uvicorn --factory theraway.app:create_app
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from theraway import __version__
from theraway.core.claims import ClaimsCodec
from theraway.core.config import Settings, get_settings
from theraway.core.logging import configure_logging, get_logger
from theraway.core.utils import utcnow
from theraway.domain.errors import ErrorKind, LifecycleError
from theraway.routers import admin as admin_router
from theraway.routers import auth as auth_router
from theraway.routers import membership as membership_router
from theraway.routers.deps import error_body
from theraway.services.auth_service import (
    AccountExistsError,
    AuthError,
    AuthService,
    InvalidCredentialsError,
)
from theraway.services.lifecycle_service import AccountLifecycle
from theraway.services.session_service import SessionAuthenticator

logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PERSISTENCE: 503,
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline security headers for a JSON-only API."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


def _error_response(kind: ErrorKind, message: str) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if kind is ErrorKind.UNAUTHENTICATED else None
    return JSONResponse(error_body(kind.value, message), status_code=STATUS_BY_KIND[kind], headers=headers)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LifecycleError)
    async def lifecycle_error_handler(request: Request, exc: LifecycleError):
        return _error_response(exc.kind, exc.message)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        if isinstance(exc, InvalidCredentialsError):
            return _error_response(ErrorKind.UNAUTHENTICATED, exc.message)
        if isinstance(exc, AccountExistsError):
            return _error_response(ErrorKind.CONFLICT, exc.message)
        return _error_response(ErrorKind.VALIDATION, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request."
        return _error_response(ErrorKind.VALIDATION, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        body = exc.detail if isinstance(exc.detail, dict) else error_body("http", str(exc.detail))
        return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def create_app(
    settings: Optional[Settings] = None,
    *,
    token_clock: Optional[Callable[[], float]] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging()

    app = FastAPI(title="TheraWay Accounts API", version=__version__)

    codec = ClaimsCodec.from_settings(settings, clock=token_clock or time.time)
    app.state.settings = settings
    app.state.authenticator = SessionAuthenticator(codec)
    app.state.auth_service = AuthService(codec)
    app.state.lifecycle = AccountLifecycle(settings=settings, clock=clock)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(settings.cors_origins),
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")

    _register_error_handlers(app)
    app.include_router(auth_router.router)
    app.include_router(membership_router.router)
    app.include_router(admin_router.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": __version__}

    logger.info("TheraWay API ready (env=%s)", settings.app_env)
    return app
