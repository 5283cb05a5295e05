"""Membership history ledger: append-only record of moderation and membership events."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from theraway.core.utils import generate_unique_id, utcnow
from theraway.db.models import MembershipHistory
from theraway.db.session import get_session
from theraway.domain.moderation import HistoryAction, LedgerDraft, TargetType

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    target_id: str
    target_type: TargetType
    action: HistoryAction
    action_description: str
    details: Mapping[str, Any] = field(default_factory=dict)
    action_date: Optional[datetime] = None
    actor_user_id: Optional[str] = None


def _to_entry(row: MembershipHistory) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        target_id=row.target_id,
        target_type=row.target_type,
        action=row.action,
        action_description=row.action_description,
        details=dict(row.details or {}),
        action_date=row.action_date,
        actor_user_id=row.actor_user_id,
    )


class MembershipHistoryLedger:
    """Writes go through `append`; there is deliberately no update or delete."""

    def build_entry(
        self,
        target_type: TargetType,
        target_id: str,
        draft: LedgerDraft,
        *,
        now: Optional[datetime] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            id=generate_unique_id(target_type.history_prefix),
            target_id=target_id,
            target_type=target_type,
            action=draft.action,
            action_description=draft.description,
            details=dict(draft.details),
            action_date=now or utcnow(),
            actor_user_id=draft.actor_user_id,
        )

    def append(self, entry: HistoryEntry, session: Optional[Session] = None) -> HistoryEntry:
        """
        Persist `entry`.

        With `session`, the row joins the caller's open transaction (this is how
        status changes and their ledger rows commit together). Without it the
        entry is written in its own transaction.
        """
        row = MembershipHistory(
            id=entry.id,
            target_id=entry.target_id,
            target_type=entry.target_type,
            action=entry.action,
            action_description=entry.action_description,
            details=dict(entry.details),
            actor_user_id=entry.actor_user_id,
            action_date=entry.action_date or utcnow(),
        )
        if session is not None:
            session.add(row)
            return entry
        with get_session() as own_session:
            with own_session.begin():
                own_session.add(row)
        return entry

    def list_for(
        self,
        target_id: str,
        target_type: TargetType,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[HistoryEntry]:
        """Entries for one account, newest first."""
        limit = max(1, min(MAX_PAGE_SIZE, int(limit)))
        offset = max(0, int(offset))
        with get_session() as session:
            stmt = (
                select(MembershipHistory)
                .where(
                    MembershipHistory.target_id == target_id,
                    MembershipHistory.target_type == target_type,
                )
                .order_by(MembershipHistory.action_date.desc(), MembershipHistory.seq.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_to_entry(row) for row in session.execute(stmt).scalars().all()]

    def count_for(self, target_id: str, target_type: TargetType) -> int:
        with get_session() as session:
            stmt = select(func.count()).select_from(MembershipHistory).where(
                MembershipHistory.target_id == target_id,
                MembershipHistory.target_type == target_type,
            )
            return int(session.execute(stmt).scalar_one())
