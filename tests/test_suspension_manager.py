"""Tests for the Suspension Manager and the appeal workflow."""

from datetime import datetime, timedelta, UTC

import pytest

from trustsafe.config import EngineSettings
from trustsafe.enforcement import ActorPipeline, SuspensionManager, ViolationRecorder
from trustsafe.errors import (
    AppealAlreadyPendingError,
    AppealNotAllowedError,
    AppealNotFoundError,
    ConflictError,
    NoActiveSuspensionError,
)
from trustsafe.ledger import AuditLedger, EventType
from trustsafe.scoring import SafetyStatus, SuspensionReason
from trustsafe.reports.models import ReportCategory, ReportRecord, ReportSeverity, ReportStatus
from trustsafe.store import AppealStatus, SuspensionKind, TrustStore, ViolationCategory


class SuspensionFixture:

    def setup_method(self):
        self.store = TrustStore()
        self.ledger = AuditLedger()
        self.pipeline = ActorPipeline(self.store, ledger=self.ledger, settings=EngineSettings())
        self.manager = SuspensionManager(self.store, self.pipeline, ledger=self.ledger)

    def teardown_method(self):
        self.store.close()
        self.ledger.close()

    def lower_rating(self, actor_id: str, stars: float, reviews: int):
        def mutate(ctx):
            ctx.actor.rating_sum = stars * reviews
            ctx.actor.rating_count = reviews
        return self.pipeline.run(actor_id, mutate=mutate).actor

    def set_bookings(self, actor_id: str, total: int, cancelled: int):
        def mutate(ctx):
            ctx.actor.bookings_total = total
            ctx.actor.bookings_cancelled = cancelled
            ctx.actor.bookings_completed = total - cancelled
        return self.pipeline.run(actor_id, mutate=mutate).actor

    def file_high_report(self, actor_id: str) -> ReportRecord:
        report = ReportRecord(
            reporter_id="client_1",
            reporter_role="client",
            reported_id=actor_id,
            reported_role="supplier",
            category=ReportCategory.FRAUD,
            severity=ReportSeverity.HIGH,
            reason="Fake listing",
        )
        self.store.insert_report(report)
        return report


class TestSuspend(SuspensionFixture):

    def test_suspend_deactivates(self):
        record = self.manager.suspend("supplier_1", SuspensionReason.FRAUD, "Chargeback ring")

        actor = self.store.get_actor("supplier_1")
        assert actor.status == SafetyStatus.SUSPENDED
        assert actor.is_active is False
        assert record.kind == SuspensionKind.SUSPENSION
        assert record.ends_at is None
        assert self.manager.active_suspension("supplier_1") == record

    def test_suspend_is_idempotent(self):
        first = self.manager.suspend("supplier_1", SuspensionReason.FRAUD, "First look")
        second = self.manager.suspend("supplier_1", SuspensionReason.FRAUD, "More evidence")

        assert second.suspension_id == first.suspension_id
        assert second.details == "More evidence"
        assert len(self.manager.suspension_history("supplier_1")) == 1
        assert self.store.get_actor("supplier_1").warning_count == 0

    def test_suspend_replaces_probation(self):
        self.lower_rating("supplier_1", 1.0, 10)  # score 76
        assert self.store.get_actor("supplier_1").status == SafetyStatus.WARNING

        def cancel_everything(ctx):
            ctx.actor.bookings_total = 10
            ctx.actor.bookings_cancelled = 10
        actor = self.pipeline.run("supplier_1", mutate=cancel_everything).actor
        assert actor.status == SafetyStatus.PROBATION
        probation = self.store.get_active_suspension("supplier_1")
        assert probation.kind == SuspensionKind.PROBATION

        record = self.manager.suspend("supplier_1", SuspensionReason.LOW_RATING)

        history = self.manager.suspension_history("supplier_1")
        assert [r.kind for r in history] == [SuspensionKind.PROBATION, SuspensionKind.SUSPENSION]
        assert history[0].active is False
        assert record.active is True

    def test_suspension_is_logged(self):
        record = self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        entries = self.ledger.get_entries_by_reference(record.suspension_id)
        assert entries[0].event_type == EventType.ACCOUNT_SUSPENDED


class TestReactivate(SuspensionFixture):

    def test_reactivate_keeps_score(self):
        self.lower_rating("supplier_1", 2.0, 10)  # score 82
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)

        result = self.manager.reactivate("supplier_1", "reviewer_1", "Cleared")

        assert result.actor.is_active is True
        assert result.actor.safety_score == 82.0
        assert result.actor.status == SafetyStatus.SAFE
        assert result.actor.reinstated_at is not None
        # Landed on Safe, so score rules apply in full again
        assert result.actor.reinstated_score is None
        assert self.manager.active_suspension("supplier_1") is None

        lifted = self.manager.suspension_history("supplier_1")[0]
        assert lifted.lifted_by == "reviewer_1"
        assert lifted.lift_note == "Cleared"

    def test_reactivate_without_suspension(self):
        with pytest.raises(NoActiveSuspensionError):
            self.manager.reactivate("supplier_1", "reviewer_1")

    def test_low_score_held_at_reinstatement_level(self):
        """A reviewer's decision is not undone by the same low score."""
        self.lower_rating("supplier_1", 0.0, 10)

        def cancel_everything(ctx):
            ctx.actor.bookings_total = 10
            ctx.actor.bookings_cancelled = 10
        actor = self.pipeline.run("supplier_1", mutate=cancel_everything).actor
        assert actor.safety_score == 40.0
        assert actor.status == SafetyStatus.PROBATION

        self.manager.suspend("supplier_1", SuspensionReason.LOW_RATING)
        result = self.manager.reactivate("supplier_1", "reviewer_1")
        assert result.actor.status == SafetyStatus.WARNING

        # Same score on the next event keeps the reviewer's decision
        assert self.pipeline.evaluate("supplier_1").actor.status == SafetyStatus.WARNING

    def test_contact_window_restarts(self):
        recorder = ViolationRecorder(self.pipeline)
        for i in range(3):
            recorder.record_violation("supplier_1", ViolationCategory.CONTACT_SHARING, f"Phone {i}")
        assert self.store.get_actor("supplier_1").status == SafetyStatus.SUSPENDED

        self.manager.reactivate("supplier_1", "reviewer_1")
        outcome = recorder.record("supplier_1", ViolationCategory.CONTACT_SHARING, "Phone again")

        assert outcome.status == SafetyStatus.SAFE
        assert outcome.violation_count == 4

    def test_full_recovery_restores_score_rules(self):
        self.lower_rating("supplier_1", 0.0, 10)
        self.set_bookings("supplier_1", 10, 10)
        report = self.file_high_report("supplier_1")
        actor = self.pipeline.evaluate("supplier_1").actor
        assert actor.safety_score == 30.0
        assert actor.status == SafetyStatus.SUSPENDED

        result = self.manager.reactivate("supplier_1", "reviewer_1")
        assert result.actor.status == SafetyStatus.WARNING
        assert result.actor.reinstated_score == 30.0

        dismissed = report.model_copy(update={"status": ReportStatus.DISMISSED})
        self.store.update_report(dismissed, ReportStatus.PENDING)
        self.lower_rating("supplier_1", 5.0, 10)
        actor = self.set_bookings("supplier_1", 10, 0)
        assert actor.status == SafetyStatus.SAFE
        assert actor.reinstated_score is None

        self.lower_rating("supplier_1", 0.0, 10)
        self.set_bookings("supplier_1", 10, 10)
        self.file_high_report("supplier_1")
        actor = self.pipeline.evaluate("supplier_1").actor

        assert actor.safety_score == 30.0
        assert actor.status == SafetyStatus.SUSPENDED
        assert self.manager.active_suspension("supplier_1").kind == SuspensionKind.SUSPENSION


class TestAppeals(SuspensionFixture):

    def test_submit_and_approve(self):
        self.lower_rating("supplier_1", 2.0, 10)
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)

        appeal = self.manager.submit_appeal("supplier_1", "The payment was legitimate")
        assert appeal.status == AppealStatus.PENDING
        assert self.manager.pending_appeals() == [appeal]

        resolved = self.manager.resolve_appeal(appeal.appeal_id, "reviewer_1", approve=True, note="OK")

        actor = self.store.get_actor("supplier_1")
        assert resolved.status == AppealStatus.APPROVED
        assert actor.is_active is True
        assert actor.safety_score == 82.0
        assert actor.status == SafetyStatus.SAFE
        assert self.manager.pending_appeals() == []

    def test_second_pending_appeal_rejected(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        self.manager.submit_appeal("supplier_1", "Please review")

        with pytest.raises(AppealAlreadyPendingError) as exc_info:
            self.manager.submit_appeal("supplier_1", "Please review again")
        assert isinstance(exc_info.value, ConflictError)

    def test_rejection_allows_a_new_appeal(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        appeal = self.manager.submit_appeal("supplier_1", "Please review")

        rejected = self.manager.resolve_appeal(appeal.appeal_id, "reviewer_1", approve=False)

        assert rejected.status == AppealStatus.REJECTED
        assert self.store.get_actor("supplier_1").status == SafetyStatus.SUSPENDED
        assert self.manager.submit_appeal("supplier_1", "New evidence").status == AppealStatus.PENDING

    def test_appeal_needs_active_record(self):
        with pytest.raises(NoActiveSuspensionError):
            self.manager.submit_appeal("supplier_1", "Why?")

    def test_non_appealable_suspension(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD, appealable=False)
        with pytest.raises(AppealNotAllowedError):
            self.manager.submit_appeal("supplier_1", "Please")

    def test_resolve_twice(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        appeal = self.manager.submit_appeal("supplier_1", "Please review")
        self.manager.resolve_appeal(appeal.appeal_id, "reviewer_1", approve=False)

        with pytest.raises(ConflictError):
            self.manager.resolve_appeal(appeal.appeal_id, "reviewer_2", approve=True)

    def test_unknown_appeal(self):
        with pytest.raises(AppealNotFoundError):
            self.manager.resolve_appeal("appeal_missing", "reviewer_1", approve=True)

    def test_escalation_supersedes_probation_appeal(self):
        self.lower_rating("supplier_1", 1.0, 10)
        actor = self.set_bookings("supplier_1", 10, 10)
        assert actor.safety_score == 46.0
        assert actor.status == SafetyStatus.PROBATION

        first = self.manager.submit_appeal("supplier_1", "Those cancellations were the venue's fault")

        self.file_high_report("supplier_1")
        actor = self.pipeline.evaluate("supplier_1").actor
        assert actor.safety_score == 36.0
        assert actor.status == SafetyStatus.SUSPENDED

        superseded = self.store.get_appeal(first.appeal_id)
        assert superseded.status == AppealStatus.SUPERSEDED
        assert superseded.reviewer_id is None

        second = self.manager.submit_appeal("supplier_1", "Please review the suspension")
        assert self.manager.pending_appeals() == [second]
        assert second.suspension_id == self.manager.active_suspension("supplier_1").suspension_id

        with pytest.raises(AppealAlreadyPendingError):
            self.manager.submit_appeal("supplier_1", "And again")

    def test_reactivation_supersedes_pending_appeal(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        appeal = self.manager.submit_appeal("supplier_1", "Please review")

        self.manager.reactivate("supplier_1", "reviewer_1", "Cleared by support")

        assert self.manager.pending_appeals() == []
        closed = self.store.get_appeal(appeal.appeal_id)
        assert closed.status == AppealStatus.SUPERSEDED
        assert closed.resolution_note == "Cleared by support"

        with pytest.raises(ConflictError):
            self.manager.resolve_appeal(appeal.appeal_id, "reviewer_2", approve=True)

        entries = self.ledger.get_entries_by_reference(appeal.appeal_id)
        assert [e.event_type for e in entries] == [EventType.APPEAL_SUBMITTED, EventType.APPEAL_RESOLVED]

    def test_approved_appeal_is_not_superseded(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        appeal = self.manager.submit_appeal("supplier_1", "Please review")

        self.manager.resolve_appeal(appeal.appeal_id, "reviewer_1", approve=True)

        assert self.store.get_appeal(appeal.appeal_id).status == AppealStatus.APPROVED

    def test_active_record_checked_inside_write_transaction(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        in_transaction = []
        read_active = self.store.get_active_suspension

        def tracking_read(actor_id):
            in_transaction.append(getattr(self.store._local, "conn", None) is not None)
            return read_active(actor_id)

        self.store.get_active_suspension = tracking_read
        self.manager.submit_appeal("supplier_1", "Please review")

        assert in_transaction == [True]


class TestExpiry(SuspensionFixture):

    def test_fixed_term_expires(self):
        self.manager.suspend("supplier_1", SuspensionReason.EXCESSIVE_CANCELLATIONS,
                             duration=timedelta(days=7))

        assert self.manager.expire_suspensions() == []

        later = datetime.now(UTC) + timedelta(days=8)
        assert self.manager.expire_suspensions(now=later) == ["supplier_1"]

        actor = self.store.get_actor("supplier_1")
        assert actor.is_active is True
        assert actor.status == SafetyStatus.SAFE
        record = self.manager.suspension_history("supplier_1")[0]
        assert record.active is False
        assert record.lifted_by == "system"

    def test_expiry_supersedes_pending_appeal(self):
        self.manager.suspend("supplier_1", SuspensionReason.EXCESSIVE_CANCELLATIONS,
                             duration=timedelta(days=7))
        appeal = self.manager.submit_appeal("supplier_1", "Please lift it early")

        later = datetime.now(UTC) + timedelta(days=8)
        self.manager.expire_suspensions(now=later)

        assert self.manager.pending_appeals() == []
        assert self.store.get_appeal(appeal.appeal_id).status == AppealStatus.SUPERSEDED

    def test_indefinite_suspension_never_expires(self):
        self.manager.suspend("supplier_1", SuspensionReason.FRAUD)
        later = datetime.now(UTC) + timedelta(days=365)
        assert self.manager.expire_suspensions(now=later) == []
