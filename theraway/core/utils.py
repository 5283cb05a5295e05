"""
Utility helpers shared across services/repositories.
"""

from datetime import datetime, timezone
import secrets


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_unique_id(prefix: str = "") -> str:
    """Opaque identifier with a readable prefix, e.g. "user_3f9c..."."""
    return f"{prefix}{secrets.token_hex(12)}"
