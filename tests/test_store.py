"""Tests for the SQLite trust store."""

from datetime import datetime, UTC

import pytest

from trustsafe.errors import AppealAlreadyPendingError, ConcurrentUpdateError, ConflictError
from trustsafe.reports import ReportCategory, ReportRecord, ReportSeverity, ReportStatus
from trustsafe.scoring import BadgeType, SuspensionReason
from trustsafe.store import (
    ActorRole,
    AppealRecord,
    AppealStatus,
    BadgeRecord,
    BookingOutcome,
    BookingOutcomeRecord,
    SuspensionRecord,
    TrustStore,
    ViolationCategory,
    ViolationRecord,
)


class TestActors:

    def setup_method(self):
        self.store = TrustStore()

    def teardown_method(self):
        self.store.close()

    def test_ensure_creates_once(self):
        first = self.store.ensure_actor("supplier_1", ActorRole.SUPPLIER)
        second = self.store.ensure_actor("supplier_1", ActorRole.CLIENT)

        assert first.safety_score == 100.0
        assert second.role == ActorRole.SUPPLIER
        assert self.store.list_actor_ids() == ["supplier_1"]

    def test_compare_and_set(self):
        actor = self.store.ensure_actor("client_1")
        saved = self.store.save_actor(actor.model_copy(update={"warning_count": 1}), actor.version)
        assert saved.version == actor.version + 1

        with pytest.raises(ConcurrentUpdateError):
            self.store.save_actor(actor.model_copy(update={"warning_count": 2}), actor.version)

        assert self.store.get_actor("client_1").warning_count == 1


class TestTransactions:

    def setup_method(self):
        self.store = TrustStore()

    def teardown_method(self):
        self.store.close()

    def violation(self, description: str) -> ViolationRecord:
        return ViolationRecord(
            actor_id="client_1",
            category=ViolationCategory.SPAM,
            weight=0.3,
            description=description,
        )

    def test_rollback_on_error(self):
        with pytest.raises(RuntimeError):
            with self.store.transaction():
                self.store.insert_violation(self.violation("first"))
                raise RuntimeError("boom")

        assert self.store.list_violations("client_1") == []

    def test_nested_transaction_joins_outer(self):
        with pytest.raises(RuntimeError):
            with self.store.transaction():
                with self.store.transaction():
                    self.store.insert_violation(self.violation("inner"))
                raise RuntimeError("boom")

        assert self.store.list_violations("client_1") == []

    def test_commit(self):
        with self.store.transaction():
            self.store.insert_violation(self.violation("one"))
            self.store.insert_violation(self.violation("two"))

        assert [v.description for v in self.store.list_violations("client_1")] == ["one", "two"]

    def test_file_backed_store(self, tmp_path):
        store = TrustStore(str(tmp_path / "trust.db"))
        with store.transaction():
            store.insert_violation(self.violation("persisted"))
        store.close()

        reopened = TrustStore(str(tmp_path / "trust.db"))
        assert len(reopened.list_violations("client_1")) == 1


class TestUniquenessRules:

    def setup_method(self):
        self.store = TrustStore()

    def teardown_method(self):
        self.store.close()

    def test_one_active_suspension_per_actor(self):
        first = SuspensionRecord(actor_id="supplier_1", reason=SuspensionReason.FRAUD)
        self.store.insert_suspension(first)

        with pytest.raises(ConcurrentUpdateError):
            self.store.insert_suspension(
                SuspensionRecord(actor_id="supplier_1", reason=SuspensionReason.REPORTS)
            )

        # Closed records do not count
        self.store.update_suspension(first.model_copy(update={"active": False}))
        self.store.insert_suspension(
            SuspensionRecord(actor_id="supplier_1", reason=SuspensionReason.REPORTS)
        )
        assert len(self.store.list_suspensions("supplier_1")) == 2

    def test_one_pending_appeal_per_actor(self):
        appeal = AppealRecord(actor_id="supplier_1", suspension_id="suspension_1", message="Please")
        self.store.insert_appeal(appeal)

        with pytest.raises(AppealAlreadyPendingError):
            self.store.insert_appeal(
                AppealRecord(actor_id="supplier_1", suspension_id="suspension_1", message="Again")
            )

        rejected = appeal.model_copy(update={"status": AppealStatus.REJECTED})
        self.store.update_appeal(rejected, AppealStatus.PENDING)
        self.store.insert_appeal(
            AppealRecord(actor_id="supplier_1", suspension_id="suspension_1", message="Again")
        )

        with pytest.raises(ConflictError):
            self.store.update_appeal(rejected, AppealStatus.PENDING)

        # A different record does not open a second slot
        with pytest.raises(AppealAlreadyPendingError):
            self.store.insert_appeal(
                AppealRecord(actor_id="supplier_1", suspension_id="suspension_2", message="Other")
            )
        self.store.insert_appeal(
            AppealRecord(actor_id="client_1", suspension_id="suspension_3", message="Mine")
        )

    def test_supersede_pending_appeals(self):
        appeal = AppealRecord(actor_id="supplier_1", suspension_id="suspension_1", message="Please")
        self.store.insert_appeal(appeal)

        closed_at = datetime.now(UTC)
        superseded = self.store.supersede_pending_appeals("suspension_1", closed_at, "Record closed")

        assert [a.appeal_id for a in superseded] == [appeal.appeal_id]
        stored = self.store.get_appeal(appeal.appeal_id)
        assert stored.status == AppealStatus.SUPERSEDED
        assert stored.resolved_at == closed_at
        assert self.store.list_pending_appeals() == []
        assert self.store.supersede_pending_appeals("suspension_1", closed_at, "Again") == []

    def test_badges_are_append_only(self):
        badge = BadgeRecord(actor_id="supplier_1", badge_type=BadgeType.VERIFIED)

        assert self.store.insert_badge(badge) is True
        assert self.store.insert_badge(badge) is False
        assert self.store.badge_types("supplier_1") == [BadgeType.VERIFIED]

    def test_report_update_guarded_by_status(self):
        report = ReportRecord(
            reporter_id="client_1",
            reporter_role="client",
            reported_id="supplier_1",
            reported_role="supplier",
            category=ReportCategory.FRAUD,
            severity=ReportSeverity.HIGH,
            reason="Fake listing",
        )
        self.store.insert_report(report)

        moved = report.model_copy(update={"status": ReportStatus.INVESTIGATING})
        self.store.update_report(moved, ReportStatus.PENDING)

        with pytest.raises(ConflictError):
            self.store.update_report(moved, ReportStatus.PENDING)

    def test_booking_outcome_upsert(self):
        self.store.upsert_booking_outcome(BookingOutcomeRecord(
            booking_id="booking_1", actor_id="supplier_1", outcome=BookingOutcome.COMPLETED,
        ))
        self.store.upsert_booking_outcome(BookingOutcomeRecord(
            booking_id="booking_1", actor_id="supplier_1", outcome=BookingOutcome.CANCELLED,
        ))

        assert self.store.get_booking_outcome("booking_1").outcome == BookingOutcome.CANCELLED
