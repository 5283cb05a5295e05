"""
Configuration helpers for the TheraWay backend.

Exposes a frozen Settings object read from environment variables so that
routers/services never fetch os.environ directly.
"""

from dataclasses import dataclass, field
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    jwt_secret: str
    jwt_issuer: str
    jwt_audience: str
    jwt_algorithm: str
    jwt_ttl_seconds: int
    jwt_leeway_seconds: int
    log_level: str
    membership_tier_name: str
    therapist_membership_fee: float
    clinic_membership_fee: float
    cors_origins: tuple[str, ...] = field(default_factory=tuple)


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str | None, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(value: str | None, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def _list(value: str | None) -> tuple[str, ...]:
        if not value:
            return ()
        return tuple(item.strip().rstrip("/") for item in value.split(",") if item.strip())

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        database_url=os.getenv("DATABASE_URL", ""),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        jwt_issuer=os.getenv("JWT_ISSUER", "theraway.net"),
        jwt_audience=os.getenv("JWT_AUDIENCE", "theraway.net"),
        jwt_algorithm=(os.getenv("JWT_ALGORITHM") or "HS256").upper(),
        jwt_ttl_seconds=_int(os.getenv("JWT_TTL_SECONDS", "604800"), 604800),
        jwt_leeway_seconds=max(0, _int(os.getenv("JWT_LEEWAY_SECONDS", "0"), 0)),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        membership_tier_name=os.getenv("MEMBERSHIP_TIER_NAME", "Standard Membership"),
        therapist_membership_fee=_float(os.getenv("THERAPIST_MEMBERSHIP_FEE", "4.00"), 4.0),
        clinic_membership_fee=_float(os.getenv("CLINIC_MEMBERSHIP_FEE", "8.00"), 8.0),
        cors_origins=_list(os.getenv("CORS_ORIGINS")),
    )
