"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from theraway.core.utils import generate_unique_id, utcnow
from theraway.db.models import Account as AccountRow, User
from theraway.db.session import get_session
from theraway.domain.identity import Role
from theraway.domain.moderation import Account, MembershipInfo, ModerationStatus, TargetType


def to_account(row: AccountRow) -> Account:
    """Detach an account row into an immutable domain snapshot."""
    return Account(
        entity_id=row.entity_id,
        target_type=row.target_type,
        owner_user_id=row.owner_user_id,
        status=row.status,
        is_verified=bool(row.is_verified),
        admin_notes=row.admin_notes,
        membership=MembershipInfo(
            application_date=row.membership_application_date,
            payment_receipt_ref=row.membership_payment_receipt_ref,
            status_message=row.membership_status_message,
            renewal_date=row.membership_renewal_date,
            tier_name=row.membership_tier_name,
        ),
        version=int(row.version or 1),
    )


def account_type_for_role(role: Role) -> Optional[TargetType]:
    if role is Role.THERAPIST:
        return TargetType.THERAPIST
    if role is Role.CLINIC_OWNER:
        return TargetType.CLINIC
    return None


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    # -------------------------- users --------------------------
    def get_user(self, user_id: str) -> Optional[User]:
        with get_session() as session:
            return session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        value = (email or "").strip().lower()
        if not value:
            return None
        with get_session() as session:
            stmt = select(User).where(User.email == value)
            return session.execute(stmt).scalar_one_or_none()

    def create_user(self, *, name: str, email: str, password_hash: str, role: Role) -> User:
        """Insert the user and, for practitioners/facility owners, their draft account in one transaction."""
        now = utcnow()
        user = User(
            id=generate_unique_id("user_"),
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        account_type = account_type_for_role(role)
        with get_session() as session:
            with session.begin():
                session.add(user)
                if account_type is not None:
                    session.add(self._new_account_row(user.id, account_type))
            session.refresh(user)
            return user

    def update_user_password(self, user_id: str, password_hash: str) -> None:
        with get_session() as session:
            with session.begin():
                user = session.get(User, user_id)
                if user:
                    user.password_hash = password_hash

    # -------------------------- accounts --------------------------
    def _new_account_row(self, owner_user_id: str, target_type: TargetType) -> AccountRow:
        # Therapist accounts are keyed by the therapist's user id; clinics get their own id.
        entity_id = owner_user_id if target_type is TargetType.THERAPIST else generate_unique_id("clinic_")
        now = utcnow()
        return AccountRow(
            entity_id=entity_id,
            target_type=target_type,
            owner_user_id=owner_user_id,
            status=ModerationStatus.DRAFT,
            is_verified=False,
            created_at=now,
            updated_at=now,
        )

    def create_account(self, owner_user_id: str, target_type: TargetType) -> Account:
        row = self._new_account_row(owner_user_id, target_type)
        with get_session() as session:
            with session.begin():
                session.add(row)
            return to_account(row)

    def get_account(self, target_type: TargetType, entity_id: str) -> Optional[Account]:
        with get_session() as session:
            row = session.get(AccountRow, entity_id)
            if row is None or row.target_type is not target_type:
                return None
            return to_account(row)

    def get_account_for_owner(self, owner_user_id: str, target_type: TargetType) -> Optional[Account]:
        with get_session() as session:
            stmt = select(AccountRow).where(
                AccountRow.owner_user_id == owner_user_id,
                AccountRow.target_type == target_type,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return to_account(row) if row else None
