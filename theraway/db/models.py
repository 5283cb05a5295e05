"""SQLAlchemy models for users, moderated accounts and the membership ledger."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    JSON,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from theraway.domain.identity import Role
from theraway.domain.moderation import HistoryAction, ModerationStatus, TargetType

from .session import Base


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes in and out, even on backends that drop the offset (SQLite)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _str_enum(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    role = Column(_str_enum(Role, "user_role"), nullable=False)
    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False)

    accounts = relationship("Account", back_populates="owner")


class Account(Base):
    """A therapist profile or clinic profile under moderation."""

    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("owner_user_id", "target_type", name="uq_accounts_owner_type"),)

    entity_id = Column(String(64), primary_key=True)
    target_type = Column(_str_enum(TargetType, "account_target_type"), nullable=False)
    owner_user_id = Column(String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    status = Column(_str_enum(ModerationStatus, "moderation_status"), default=ModerationStatus.DRAFT, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    admin_notes = Column(Text, nullable=True)
    membership_application_date = Column(UTCDateTime, nullable=True)
    membership_payment_receipt_ref = Column(String(512), nullable=True)
    membership_status_message = Column(String(255), nullable=True)
    membership_renewal_date = Column(UTCDateTime, nullable=True)
    membership_tier_name = Column(String(128), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False)

    owner = relationship("User", back_populates="accounts")

    __mapper_args__ = {"version_id_col": version}


class MembershipHistory(Base):
    """Append-only ledger row. Never updated or deleted."""

    __tablename__ = "membership_history"
    __table_args__ = (Index("ix_membership_history_target", "target_type", "target_id", "seq"),)

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), unique=True, nullable=False)
    target_id = Column(String(64), nullable=False)
    target_type = Column(_str_enum(TargetType, "history_target_type"), nullable=False)
    action = Column(_str_enum(HistoryAction, "history_action"), nullable=False)
    action_description = Column(String(512), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    actor_user_id = Column(String(64), nullable=True)
    action_date = Column(UTCDateTime, default=_utcnow, nullable=False)


@event.listens_for(MembershipHistory, "before_update")
@event.listens_for(MembershipHistory, "before_delete")
def _reject_history_mutation(mapper, connection, target):
    raise RuntimeError("membership_history rows are append-only")
