"""
Shared fixtures: a temporary SQLite database configured through env vars,
a controllable clock and helpers to create users with accounts.
"""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# make the theraway package importable when running from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from theraway.core import config as core_config
from theraway.core.security import hash_password
from theraway.db import models, session as db_session
from theraway.domain.identity import Principal, Role
from theraway.repositories.sql_repository import SQLRepository, account_type_for_role
from theraway.services.lifecycle_service import AccountLifecycle

TEST_SECRET = "test-secret-with-enough-entropy-0123456789"


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


def _clear_caches() -> None:
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Temporary SQLite database plus the env vars the app needs."""
    db_file = tmp_path / "theraway.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    _clear_caches()

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    _clear_caches()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def repo(db_env):
    return SQLRepository()


@pytest.fixture()
def lifecycle(db_env, clock):
    return AccountLifecycle(clock=clock)


@pytest.fixture()
def make_user(repo):
    """Create a user (and its draft account) and return (principal, account or None)."""
    counter = {"n": 0}

    def _make(role: Role, name: str = "User"):
        counter["n"] += 1
        user = repo.create_user(
            name=name,
            email=f"{role.value.lower()}{counter['n']}@example.com",
            password_hash=hash_password("password123"),
            role=role,
        )
        principal = Principal(user_id=user.id, role=role, display_name=name)
        account_type = account_type_for_role(role)
        account = repo.get_account_for_owner(user.id, account_type) if account_type else None
        return principal, account

    return _make


@pytest.fixture()
def admin(make_user):
    principal, _ = make_user(Role.ADMIN, name="Admin")
    return principal
