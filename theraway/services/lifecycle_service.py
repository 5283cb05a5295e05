"""
Account lifecycle use cases: membership applications and admin moderation.

Every state-changing call goes through the TransactionCoordinator so the
account row and its ledger entry are committed together or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from theraway.core.config import Settings, get_settings
from theraway.core.logging import get_logger
from theraway.core.utils import utcnow
from theraway.domain import moderation
from theraway.domain.errors import (
    AccountNotFoundError,
    ConcurrentUpdateError,
    ErrorKind,
    ForbiddenError,
    PersistenceError,
    ValidationError,
)
from theraway.domain.identity import Principal, Role
from theraway.domain.moderation import Account, TargetType, parse_status, parse_target_type
from theraway.repositories.sql_repository import SQLRepository
from theraway.services.authorization import AuthorizationGuard
from theraway.services.ledger import DEFAULT_PAGE_SIZE, HistoryEntry, MembershipHistoryLedger
from theraway.services.transactions import CommitOutcome, CommitResult, Decide, TransactionCoordinator

logger = get_logger(__name__)

ADMIN_ONLY = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class LifecycleResult:
    account: Account
    outcome: CommitOutcome
    entry: Optional[HistoryEntry] = None

    @property
    def changed(self) -> bool:
        return self.outcome is CommitOutcome.APPLIED


class AccountLifecycle:
    def __init__(
        self,
        repository: Optional[SQLRepository] = None,
        coordinator: Optional[TransactionCoordinator] = None,
        ledger: Optional[MembershipHistoryLedger] = None,
        guard: Optional[AuthorizationGuard] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository or SQLRepository()
        self.ledger = ledger or MembershipHistoryLedger()
        self.coordinator = coordinator or TransactionCoordinator(self.ledger, clock=clock)
        self.guard = guard or AuthorizationGuard()
        self.settings = settings or get_settings()
        self.clock = clock

    # -------------------------------------- helpers --------------------------------------
    @staticmethod
    def _target(value: str | TargetType) -> TargetType:
        try:
            return parse_target_type(value)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None

    def _load(self, target_type: TargetType, entity_id: str) -> Account:
        account = self.repository.get_account(target_type, entity_id)
        if account is None:
            raise AccountNotFoundError(f"No {target_type.value.lower()} account with id {entity_id}.")
        return account

    def _fee_for(self, target_type: TargetType) -> float:
        if target_type is TargetType.CLINIC:
            return self.settings.clinic_membership_fee
        return self.settings.therapist_membership_fee

    def _run(self, event: str, principal: Principal, target_type: TargetType, entity_id: str, decide: Decide) -> LifecycleResult:
        result: CommitResult = self.coordinator.commit(target_type, entity_id, decide)
        if result.outcome is CommitOutcome.FAILED:
            logger.warning("%s on %s %s by %s failed: %s", event, target_type.value, entity_id, principal.user_id, result.error)
            if result.kind is ErrorKind.CONFLICT:
                raise ConcurrentUpdateError("The account was changed by someone else. Please retry.")
            raise PersistenceError("The change could not be saved. Please retry.")
        if result.outcome is CommitOutcome.APPLIED:
            new_status = result.account.status.value
            previous = result.entry.details.get("previousStatus", new_status) if result.entry else new_status
            logger.info(
                "%s on %s %s by %s (%s): %s -> %s",
                event,
                target_type.value,
                entity_id,
                principal.user_id,
                principal.role.value,
                previous,
                new_status,
            )
        return LifecycleResult(account=result.account, outcome=result.outcome, entry=result.entry)

    # -------------------------------------- reads --------------------------------------
    def get_account(self, principal: Principal, target_type: str | TargetType, entity_id: str) -> Account:
        target = self._target(target_type)
        self.guard.require(principal, {target.owner_role}, message="You cannot view this account.")
        account = self._load(target, entity_id)
        self.guard.require(principal, {target.owner_role}, account.owner_user_id, message="You cannot view this account.")
        return account

    def history(
        self,
        principal: Principal,
        target_type: str | TargetType,
        entity_id: str,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[HistoryEntry]:
        """Ledger for one account, newest first. Owners see their own, admins see all."""
        account = self.get_account(principal, target_type, entity_id)
        return self.ledger.list_for(account.entity_id, account.target_type, limit=limit, offset=offset)

    # -------------------------------------- owner events --------------------------------------
    def apply(
        self,
        principal: Principal,
        target_type: str | TargetType,
        entity_id: str,
        *,
        receipt_ref: Optional[str],
        tier_name: Optional[str] = None,
    ) -> LifecycleResult:
        target = self._target(target_type)
        if principal.role is not target.owner_role:
            raise ForbiddenError("Only the account owner can perform this action.")
        account = self._load(target, entity_id)
        # owner_user_id is immutable, so this can run outside the row lock
        self.guard.require_owner(principal, target.owner_role, account.owner_user_id)

        tier = (tier_name or "").strip() or self.settings.membership_tier_name
        fee = self._fee_for(target)

        def decide(current: Account) -> moderation.Transition:
            return moderation.plan_apply(
                current,
                receipt_ref=receipt_ref,
                tier_name=tier,
                fee=fee,
                applied_by=principal.user_id,
                now=self.clock(),
            )

        return self._run("apply", principal, target, entity_id, decide)

    # -------------------------------------- admin events --------------------------------------
    def approve(self, principal: Principal, target_type: str | TargetType, entity_id: str, *, notes: Optional[str] = None) -> LifecycleResult:
        self.guard.require(principal, ADMIN_ONLY, message="Only admins can approve memberships.")
        target = self._target(target_type)
        return self._run(
            "approve",
            principal,
            target,
            entity_id,
            lambda current: moderation.plan_approve(current, admin=principal, notes=notes, now=self.clock()),
        )

    def reject(self, principal: Principal, target_type: str | TargetType, entity_id: str, *, notes: Optional[str] = None) -> LifecycleResult:
        self.guard.require(principal, ADMIN_ONLY, message="Only admins can reject memberships.")
        target = self._target(target_type)
        return self._run(
            "reject",
            principal,
            target,
            entity_id,
            lambda current: moderation.plan_reject(current, admin=principal, notes=notes, now=self.clock()),
        )

    def admin_set_status(
        self,
        principal: Principal,
        target_type: str | TargetType,
        entity_id: str,
        status: str,
        *,
        notes: Optional[str] = None,
    ) -> LifecycleResult:
        """Override that moves an account to any status; still ledgered."""
        self.guard.require(principal, ADMIN_ONLY, message="Only admins can change account status.")
        target = self._target(target_type)
        try:
            new_status = parse_status(status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
        return self._run(
            "set_status",
            principal,
            target,
            entity_id,
            lambda current: moderation.plan_set_status(
                current, admin=principal, status=new_status, notes=notes, now=self.clock()
            ),
        )

    def admin_annotate(
        self,
        principal: Principal,
        target_type: str | TargetType,
        entity_id: str,
        *,
        notes: Optional[str] = None,
        verified: Optional[bool] = None,
    ) -> LifecycleResult:
        self.guard.require(principal, ADMIN_ONLY, message="Only admins can annotate accounts.")
        target = self._target(target_type)
        return self._run(
            "annotate",
            principal,
            target,
            entity_id,
            lambda current: moderation.plan_annotate(current, notes=notes, verified=verified),
        )

    def renew(self, principal: Principal, target_type: str | TargetType, entity_id: str) -> LifecycleResult:
        self.guard.require(principal, ADMIN_ONLY, message="Only admins can renew memberships.")
        target = self._target(target_type)
        return self._run(
            "renew",
            principal,
            target,
            entity_id,
            lambda current: moderation.plan_renew(current, admin=principal, now=self.clock()),
        )
