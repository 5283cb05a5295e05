"""AccountLifecycle against a real (SQLite) store."""
from __future__ import annotations

import pytest
from sqlalchemy.exc import SQLAlchemyError

from theraway.domain import moderation
from theraway.domain.errors import (
    AccountNotFoundError,
    ConcurrentUpdateError,
    ErrorKind,
    ForbiddenError,
    InvalidTransitionError,
    PersistenceError,
    ValidationError,
)
from theraway.domain.identity import Role
from theraway.domain.moderation import HistoryAction, ModerationStatus, TargetType
from theraway.services.transactions import CommitOutcome, CommitResult


@pytest.fixture()
def therapist(make_user):
    return make_user(Role.THERAPIST, name="Ana")


def _count(lifecycle, account):
    return lifecycle.ledger.count_for(account.entity_id, account.target_type)


def test_apply_reject_reapply_scenario(lifecycle, therapist, admin, clock):
    owner, account = therapist

    first = lifecycle.apply(owner, "THERAPIST", account.entity_id, receipt_ref="r1.pdf")
    assert first.account.status is ModerationStatus.PENDING_APPROVAL
    assert first.changed

    clock.advance(hours=1)
    rejected = lifecycle.reject(admin, TargetType.THERAPIST, account.entity_id, notes="incomplete docs")
    assert rejected.account.status is ModerationStatus.REJECTED
    assert rejected.account.admin_notes == "incomplete docs"
    assert rejected.entry.details["previousStatus"] == "pending_approval"

    clock.advance(hours=1)
    again = lifecycle.apply(owner, TargetType.THERAPIST, account.entity_id, receipt_ref="r2.pdf")
    assert again.account.status is ModerationStatus.PENDING_APPROVAL
    assert again.account.membership.payment_receipt_ref == "r2.pdf"

    history = lifecycle.history(owner, TargetType.THERAPIST, account.entity_id)
    assert [entry.action for entry in history] == [HistoryAction.APPLIED, HistoryAction.REJECTED, HistoryAction.APPLIED]
    assert list(reversed([entry.action_date for entry in history])) == sorted(entry.action_date for entry in history)
    assert history[0].details["receiptRef"] == "r2.pdf"
    assert history[0].id.startswith("mhist_ther_")


def test_apply_records_tier_and_fee(lifecycle, make_user):
    owner, account = make_user(Role.CLINIC_OWNER, name="Clinic")
    result = lifecycle.apply(owner, TargetType.CLINIC, account.entity_id, receipt_ref="receipts/c1.png")

    assert result.account.membership.tier_name == "Standard Membership"
    assert result.entry.details["fee"] == 8.0
    assert result.entry.details["appliedBy"] == owner.user_id
    assert result.entry.id.startswith("mhist_clinic_")


def test_approve_sets_renewal_once(lifecycle, therapist, admin, clock):
    owner, account = therapist
    lifecycle.apply(owner, TargetType.THERAPIST, account.entity_id, receipt_ref="r1.pdf")

    approved = lifecycle.approve(admin, TargetType.THERAPIST, account.entity_id)
    renewal = approved.account.membership.renewal_date
    assert approved.account.status is ModerationStatus.LIVE
    assert approved.account.is_listed
    assert renewal == moderation.add_years(clock())

    clock.advance(days=3)
    with pytest.raises(InvalidTransitionError):
        lifecycle.approve(admin, TargetType.THERAPIST, account.entity_id)

    current = lifecycle.get_account(admin, TargetType.THERAPIST, account.entity_id)
    assert current.membership.renewal_date == renewal
    assert _count(lifecycle, current) == 2


def test_cross_owner_mutation_is_forbidden(lifecycle, make_user):
    intruder, _ = make_user(Role.THERAPIST, name="u1")
    _, victim_account = make_user(Role.THERAPIST, name="u2")

    with pytest.raises(ForbiddenError):
        lifecycle.apply(intruder, TargetType.THERAPIST, victim_account.entity_id, receipt_ref="r1.pdf")

    current = lifecycle.repository.get_account(TargetType.THERAPIST, victim_account.entity_id)
    assert current.status is ModerationStatus.DRAFT
    assert _count(lifecycle, current) == 0


def test_admin_cannot_apply_on_behalf_of_owner(lifecycle, therapist, admin):
    _, account = therapist
    with pytest.raises(ForbiddenError):
        lifecycle.apply(admin, TargetType.THERAPIST, account.entity_id, receipt_ref="r1.pdf")


def test_non_admin_cannot_moderate(lifecycle, therapist):
    owner, account = therapist
    lifecycle.apply(owner, TargetType.THERAPIST, account.entity_id, receipt_ref="r1.pdf")
    with pytest.raises(ForbiddenError):
        lifecycle.approve(owner, TargetType.THERAPIST, account.entity_id)


def test_history_is_owner_or_admin_only(lifecycle, therapist, make_user, admin):
    owner, account = therapist
    other, _ = make_user(Role.THERAPIST, name="Other")
    client, _ = make_user(Role.CLIENT, name="Client")

    assert lifecycle.history(owner, TargetType.THERAPIST, account.entity_id) == []
    assert lifecycle.history(admin, TargetType.THERAPIST, account.entity_id) == []
    for principal in (other, client):
        with pytest.raises(ForbiddenError):
            lifecycle.history(principal, TargetType.THERAPIST, account.entity_id)


def test_unknown_account_and_target_type(lifecycle, admin):
    with pytest.raises(AccountNotFoundError):
        lifecycle.approve(admin, TargetType.CLINIC, "clinic_missing")
    with pytest.raises(ValidationError):
        lifecycle.approve(admin, "HOSPITAL", "clinic_missing")


def test_annotate_without_effective_change_is_no_change(lifecycle, therapist, admin):
    _, account = therapist
    first = lifecycle.admin_annotate(admin, TargetType.THERAPIST, account.entity_id, notes="checked", verified=True)
    assert first.outcome is CommitOutcome.APPLIED
    assert first.account.is_verified
    assert first.entry is None

    second = lifecycle.admin_annotate(admin, TargetType.THERAPIST, account.entity_id, notes="checked", verified=True)
    assert second.outcome is CommitOutcome.NO_CHANGE
    assert second.account.version == first.account.version
    assert _count(lifecycle, second.account) == 0


def test_set_status_override_is_ledgered(lifecycle, therapist, admin):
    _, account = therapist
    result = lifecycle.admin_set_status(admin, TargetType.THERAPIST, account.entity_id, "live", notes="manual")
    assert result.account.status is ModerationStatus.LIVE
    assert result.account.membership.status_message == "Membership approved."
    assert result.account.membership.renewal_date is not None
    assert result.entry.action is HistoryAction.APPROVED

    same = lifecycle.admin_set_status(admin, TargetType.THERAPIST, account.entity_id, "live", notes="manual")
    assert same.outcome is CommitOutcome.NO_CHANGE
    assert _count(lifecycle, same.account) == 1

    with pytest.raises(ValidationError):
        lifecycle.admin_set_status(admin, TargetType.THERAPIST, account.entity_id, "archived")


def test_renew_extends_live_membership(lifecycle, therapist, admin, clock):
    owner, account = therapist
    lifecycle.apply(owner, TargetType.THERAPIST, account.entity_id, receipt_ref="r1.pdf")
    approved = lifecycle.approve(admin, TargetType.THERAPIST, account.entity_id)

    renewed = lifecycle.renew(admin, TargetType.THERAPIST, account.entity_id)

    assert renewed.account.membership.renewal_date == moderation.add_years(approved.account.membership.renewal_date)
    assert renewed.entry.action is HistoryAction.RENEWED


def test_store_failure_rolls_back_both_writes(lifecycle, therapist, monkeypatch):
    owner, account = therapist

    def broken_append(entry, session=None):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(lifecycle.ledger, "append", broken_append)

    with pytest.raises(PersistenceError):
        lifecycle.apply(owner, TargetType.THERAPIST, account.entity_id, receipt_ref="r1.pdf")

    monkeypatch.undo()
    current = lifecycle.repository.get_account(TargetType.THERAPIST, account.entity_id)
    assert current.status is ModerationStatus.DRAFT
    assert current.membership.payment_receipt_ref is None
    assert _count(lifecycle, current) == 0


def test_concurrent_approve_is_reevaluated(lifecycle, therapist, admin, clock):
    owner, account = therapist
    lifecycle.apply(owner, TargetType.THERAPIST, account.entity_id, receipt_ref="r1.pdf")
    seen = []

    def racing_decide(current):
        seen.append(current.status)
        if len(seen) == 1:
            # another admin wins the race between our read and our write
            lifecycle.approve(admin, TargetType.THERAPIST, account.entity_id)
        return moderation.plan_approve(current, admin=admin, notes=None, now=clock())

    with pytest.raises(InvalidTransitionError):
        lifecycle.coordinator.commit(TargetType.THERAPIST, account.entity_id, racing_decide)

    assert seen == [ModerationStatus.PENDING_APPROVAL, ModerationStatus.LIVE]
    current = lifecycle.repository.get_account(TargetType.THERAPIST, account.entity_id)
    assert current.status is ModerationStatus.LIVE
    approvals = [e for e in lifecycle.history(admin, TargetType.THERAPIST, account.entity_id) if e.action is HistoryAction.APPROVED]
    assert len(approvals) == 1


def test_persistent_contention_surfaces_as_conflict(lifecycle, therapist, admin):
    _, account = therapist

    def always_loses(current):
        lifecycle.admin_annotate(admin, TargetType.THERAPIST, account.entity_id, verified=not current.is_verified)
        return moderation.plan_annotate(current, notes=f"v{current.version}", verified=None)

    result = lifecycle.coordinator.commit(TargetType.THERAPIST, account.entity_id, always_loses)
    assert result.outcome is CommitOutcome.FAILED
    assert result.kind is ErrorKind.CONFLICT


def test_conflict_outcome_maps_to_concurrent_update_error(lifecycle, therapist, admin, monkeypatch):
    _, account = therapist
    monkeypatch.setattr(
        lifecycle.coordinator,
        "commit",
        lambda target_type, entity_id, decide: CommitResult(CommitOutcome.FAILED, kind=ErrorKind.CONFLICT, error="lost"),
    )
    with pytest.raises(ConcurrentUpdateError):
        lifecycle.admin_annotate(admin, TargetType.THERAPIST, account.entity_id, notes="x")
