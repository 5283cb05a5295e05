"""
Atomic "account change + ledger entry" commits.

The account row is read under a row lock (SELECT ... FOR UPDATE) and the
transition is decided against that locked state, so guards such as "must be
pending review" see the latest committed status. Backends without row locks
fall back to the optimistic `version` column: a lost race raises
StaleDataError and the transition is re-decided against the fresh row.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from theraway.core.logging import get_logger
from theraway.core.utils import utcnow
from theraway.db.models import Account as AccountRow
from theraway.db.session import get_session
from theraway.domain.errors import AccountNotFoundError, ErrorKind
from theraway.domain.moderation import Account, TargetType, Transition
from theraway.repositories.sql_repository import to_account
from theraway.services.ledger import HistoryEntry, MembershipHistoryLedger

logger = get_logger(__name__)

IMMUTABLE_FIELDS = frozenset({"entity_id", "target_type", "owner_user_id", "version", "created_at"})


class CommitOutcome(str, Enum):
    APPLIED = "applied"
    NO_CHANGE = "no_change"
    FAILED = "failed"


@dataclass(frozen=True)
class CommitResult:
    outcome: CommitOutcome
    account: Optional[Account] = None
    entry: Optional[HistoryEntry] = None
    kind: Optional[ErrorKind] = None
    error: Optional[str] = None


Decide = Callable[[Account], Transition]


class TransactionCoordinator:
    def __init__(
        self,
        ledger: Optional[MembershipHistoryLedger] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = 3,
    ):
        self.ledger = ledger or MembershipHistoryLedger()
        self.clock = clock
        self.max_attempts = max(1, max_attempts)

    def commit(self, target_type: TargetType, entity_id: str, decide: Decide) -> CommitResult:
        """
        Lock the account, ask `decide` for the transition, write it plus its ledger entry.

        Domain errors raised by `decide` roll back and propagate unchanged.
        Store failures never raise: they come back as outcome FAILED.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._commit_once(target_type, entity_id, decide)
            except StaleDataError:
                logger.info(
                    "Concurrent update on %s %s; re-evaluating (attempt %d/%d)",
                    target_type.value,
                    entity_id,
                    attempt,
                    self.max_attempts,
                )
            except SQLAlchemyError as exc:
                logger.error("Commit failed for %s %s: %s", target_type.value, entity_id, exc, exc_info=True)
                return CommitResult(CommitOutcome.FAILED, kind=ErrorKind.PERSISTENCE, error=str(exc))
        return CommitResult(
            CommitOutcome.FAILED,
            kind=ErrorKind.CONFLICT,
            error=f"gave up after {self.max_attempts} concurrent updates",
        )

    def _commit_once(self, target_type: TargetType, entity_id: str, decide: Decide) -> CommitResult:
        with get_session() as session:
            with session.begin():
                stmt = (
                    select(AccountRow)
                    .where(AccountRow.entity_id == entity_id, AccountRow.target_type == target_type)
                    .with_for_update()
                )
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    raise AccountNotFoundError(f"No {target_type.value.lower()} account with id {entity_id}.")
                current = to_account(row)
                transition = decide(current)
                changed = self._effective_changes(row, transition.changes)
                if not changed:
                    logger.debug("No effective change for %s %s", target_type.value, entity_id)
                    return CommitResult(CommitOutcome.NO_CHANGE, account=current)
                if "status" in changed and transition.ledger is None:
                    raise ValueError("A status change must be committed together with a ledger entry.")

                for column, value in changed.items():
                    setattr(row, column, value)
                entry = None
                if transition.ledger is not None:
                    entry = self.ledger.build_entry(target_type, entity_id, transition.ledger, now=self.clock())
                    self.ledger.append(entry, session=session)
                session.flush()
            return CommitResult(CommitOutcome.APPLIED, account=to_account(row), entry=entry)

    @staticmethod
    def _effective_changes(row: AccountRow, changes: Mapping[str, Any]) -> dict[str, Any]:
        effective = {}
        for column, value in changes.items():
            if column in IMMUTABLE_FIELDS:
                raise ValueError(f"{column} cannot be changed after account creation.")
            if not hasattr(AccountRow, column):
                raise ValueError(f"Unknown account field: {column}")
            if getattr(row, column) != value:
                effective[column] = value
        return effective
