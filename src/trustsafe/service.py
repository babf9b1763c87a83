"""
Trust & Safety Service - inbound events and the outbound status surface.

Wires the scanner, report intake, violation recorder, actor pipeline and
suspension manager around one store and one audit ledger.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from trustsafe.config import EngineSettings, config as default_config
from trustsafe.enforcement.pipeline import ActorPipeline, PipelineContext
from trustsafe.enforcement.suspension import SuspensionManager
from trustsafe.enforcement.violations import ViolationRecorder
from trustsafe.errors import ValidationError
from trustsafe.ledger import AuditLedger, EventType
from trustsafe.reports.incidents import IncidentDispatcher, Notifier, WebhookNotifier
from trustsafe.reports.intake import ReportIntake
from trustsafe.reports.models import ReportCategory, ReportRecord
from trustsafe.scanner import ContactScanner, Severity, warning_message
from trustsafe.scanner.models import ContactType
from trustsafe.scoring.models import BadgeType, SafetyStatus, ScoreBreakdown, SuspensionReason
from trustsafe.store import (
    ActorRecord,
    ActorRole,
    AppealRecord,
    BookingOutcome,
    BookingOutcomeRecord,
    SuspensionRecord,
    TrustStore,
    ViolationCategory,
)


logger = logging.getLogger(__name__)


class MessageVerdict(BaseModel):
    """What the chat layer should do with a message."""

    delivered: bool = Field(description="Whether the message may be delivered")
    blocked: bool = Field(default=False)
    refused: bool = Field(default=False, description="Sender is suspended")
    severity: Severity = Field(default=Severity.NONE)
    category: Optional[ContactType] = Field(default=None)
    warning: Optional[str] = Field(default=None, description="Localized warning for the sender")
    violation_id: Optional[str] = Field(default=None)


class SafetyStatusView(BaseModel):
    """Outbound view of an actor's standing."""

    actor_id: str
    score: float
    status: SafetyStatus
    badges: List[BadgeType] = Field(default_factory=list)
    is_active: bool = True
    warning_count: int = 0
    violation_count: int = 0


class MaintenanceReport(BaseModel):
    """Outcome of one maintenance pass."""

    incidents_delivered: int = 0
    incidents_pending: int = 0
    suspensions_expired: List[str] = Field(default_factory=list)


class TrustSafetyService:
    """
    Facade for the Trust & Safety Engine.

    Inbound: message_submitted, booking_outcome_changed, review_submitted,
    report_submitted, response_rate_reported, identity_verified.

    Outbound: get_safety_status, can_message, submit_appeal.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        store: Optional[TrustStore] = None,
        ledger: Optional[AuditLedger] = None,
        notifier: Optional[Notifier] = None,
        scanner: Optional[ContactScanner] = None,
    ):
        self.settings = settings or default_config
        self.store = store or TrustStore(self.settings.db_path)
        self.ledger = ledger or AuditLedger(self.settings.ledger_path)
        self.scanner = scanner or ContactScanner()

        if notifier is None and self.settings.incident_webhook_url:
            notifier = WebhookNotifier(
                self.settings.incident_webhook_url,
                timeout=self.settings.incident_webhook_timeout,
            )

        self.pipeline = ActorPipeline(self.store, ledger=self.ledger, settings=self.settings)
        self.violations = ViolationRecorder(self.pipeline)
        self.dispatcher = IncidentDispatcher(
            self.store,
            notifier=notifier,
            max_workers=self.settings.incident_workers,
        )
        self.reports = ReportIntake(self.store, self.pipeline, dispatcher=self.dispatcher)
        self.suspensions = SuspensionManager(self.store, self.pipeline, ledger=self.ledger)

        logger.info("Trust & Safety Service initialized")

    # ---- Inbound ----

    def message_submitted(
        self,
        sender_id: str,
        text: str,
        message_id: Optional[str] = None,
    ) -> MessageVerdict:
        """
        Scan a chat message before delivery.

        HIGH blocks the message and records a contact-sharing violation.
        MEDIUM is delivered with a warning and logged for repeat-offender
        review. Suspended senders are refused outright.
        """
        if not self.can_message(sender_id):
            logger.info(f"Message refused: {sender_id} is suspended")
            return MessageVerdict(delivered=False, blocked=True, refused=True)

        result = self.scanner.analyze(text)
        locale = self.settings.locale
        warning = warning_message(result.severity, locale) or None

        if result.should_block():
            violation = self.violations.record_violation(
                sender_id,
                ViolationCategory.CONTACT_SHARING,
                f"Blocked message: {result.category.value}",
                source_ref=message_id,
            )
            self.ledger.log_event(
                EventType.MESSAGE_BLOCKED,
                {
                    "category": result.category.value,
                    "matched_text": result.matched_text,
                    "violation_id": violation.violation_id,
                },
                actor_id=sender_id,
                reference_id=message_id,
            )
            logger.warning(f"Message blocked: {sender_id} [{result.category.value}]")
            return MessageVerdict(
                delivered=False,
                blocked=True,
                severity=result.severity,
                category=result.category,
                warning=warning,
                violation_id=violation.violation_id,
            )

        if result.severity == Severity.MEDIUM:
            self.ledger.log_event(
                EventType.CONTACT_FLAGGED,
                {
                    "category": result.category.value,
                    "matched_text": result.matched_text,
                },
                actor_id=sender_id,
                reference_id=message_id,
            )
            logger.info(f"Message flagged: {sender_id} [{result.category.value}]")

        return MessageVerdict(
            delivered=True,
            severity=result.severity,
            category=result.category,
            warning=warning,
        )

    def booking_outcome_changed(
        self,
        actor_id: str,
        outcome: BookingOutcome,
        booking_id: Optional[str] = None,
    ) -> ActorRecord:
        """
        Apply a booking outcome to the actor's aggregates.

        With a booking ID, replays are no-ops and a changed outcome moves
        the counters instead of adding a booking. A new no-show also
        records a no-show violation.
        """
        outcome = self._parse(BookingOutcome, outcome, "outcome")
        counter = {
            BookingOutcome.COMPLETED: "bookings_completed",
            BookingOutcome.CANCELLED: "bookings_cancelled",
            BookingOutcome.NO_SHOW: "bookings_no_show",
        }
        no_show = None
        if outcome == BookingOutcome.NO_SHOW:
            no_show = ViolationRecorder.build(
                actor_id,
                ViolationCategory.NO_SHOW,
                "No-show on booking",
                source_ref=booking_id,
            )

        def mutate(ctx: PipelineContext) -> None:
            actor = ctx.actor
            previous = self.store.get_booking_outcome(booking_id) if booking_id else None

            if previous is not None and previous.actor_id != actor_id:
                raise ValidationError(
                    f"Booking {booking_id} belongs to {previous.actor_id}",
                    {"booking_id": booking_id},
                )
            if previous is not None and previous.outcome == outcome:
                return

            if previous is None:
                actor.bookings_total += 1
            else:
                field = counter[previous.outcome]
                setattr(actor, field, max(0, getattr(actor, field) - 1))
            field = counter[outcome]
            setattr(actor, field, getattr(actor, field) + 1)

            if booking_id:
                record = BookingOutcomeRecord(
                    booking_id=booking_id,
                    actor_id=actor_id,
                    outcome=outcome,
                    updated_at=ctx.now,
                )
                ctx.stage(lambda store: store.upsert_booking_outcome(record))

            if no_show is not None:
                ViolationRecorder.stage(ctx, no_show)

        return self.pipeline.run(actor_id, mutate=mutate).actor

    def review_submitted(self, target_id: str, rating: float) -> ActorRecord:
        """Add a review rating (clamped to [1, 5])."""
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or math.isnan(rating):
            raise ValidationError(f"Invalid rating: {rating!r}")
        rating = max(1.0, min(5.0, float(rating)))

        def mutate(ctx: PipelineContext) -> None:
            ctx.actor.rating_sum += rating
            ctx.actor.rating_count += 1

        return self.pipeline.run(target_id, mutate=mutate).actor

    def report_submitted(
        self,
        reporter_id: str,
        reporter_role: ActorRole,
        reported_id: str,
        reported_role: ActorRole,
        category: ReportCategory,
        reason: str = "",
        evidence: Iterable[str] = (),
        booking_id: Optional[str] = None,
        review_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> ReportRecord:
        return self.reports.submit_report(
            reporter_id,
            reporter_role,
            reported_id,
            reported_role,
            category,
            reason=reason,
            evidence=evidence,
            booking_id=booking_id,
            review_id=review_id,
            conversation_id=conversation_id,
        )

    def response_rate_reported(self, actor_id: str, rate: float) -> ActorRecord:
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or math.isnan(rate):
            raise ValidationError(f"Invalid response rate: {rate!r}")
        rate = max(0.0, min(1.0, float(rate)))

        def mutate(ctx: PipelineContext) -> None:
            ctx.actor.response_rate = rate

        return self.pipeline.run(actor_id, mutate=mutate).actor

    def identity_verified(self, actor_id: str) -> ActorRecord:
        def mutate(ctx: PipelineContext) -> None:
            ctx.actor.is_verified = True

        return self.pipeline.run(actor_id, mutate=mutate).actor

    # ---- Outbound ----

    def get_safety_status(self, actor_id: str) -> SafetyStatusView:
        """Current standing. Unknown actors read as a fresh account."""
        actor = self.store.get_actor(actor_id)
        if actor is None:
            actor = ActorRecord(actor_id=actor_id)

        return SafetyStatusView(
            actor_id=actor_id,
            score=actor.safety_score,
            status=actor.status,
            badges=self.store.badge_types(actor_id),
            is_active=actor.is_active,
            warning_count=actor.warning_count,
            violation_count=actor.violation_count,
        )

    def can_message(self, actor_id: str) -> bool:
        actor = self.store.get_actor(actor_id)
        return actor is None or actor.status != SafetyStatus.SUSPENDED

    def submit_appeal(self, actor_id: str, message: str) -> str:
        """Appeal the active record; returns the appeal ID."""
        return self.suspensions.submit_appeal(actor_id, message).appeal_id

    def score_breakdown(self, actor_id: str) -> ScoreBreakdown:
        """Recompute the score with its capped penalties, without writing."""
        actor = self.store.get_actor(actor_id) or ActorRecord(actor_id=actor_id)
        reports = self.store.list_reports_against(actor_id)
        return self.pipeline.score_for(actor, reports)

    # ---- Operator surface ----

    def suspend(
        self,
        actor_id: str,
        reason: SuspensionReason,
        details: Optional[str] = None,
        duration_days: Optional[int] = None,
        appealable: bool = True,
    ) -> SuspensionRecord:
        duration = timedelta(days=duration_days) if duration_days else None
        return self.suspensions.suspend(actor_id, reason, details, duration, appealable)

    def reactivate(self, actor_id: str, reviewer_id: str, note: Optional[str] = None) -> ActorRecord:
        return self.suspensions.reactivate(actor_id, reviewer_id, note).actor

    def resolve_appeal(
        self,
        appeal_id: str,
        reviewer_id: str,
        approve: bool,
        note: Optional[str] = None,
    ) -> AppealRecord:
        return self.suspensions.resolve_appeal(appeal_id, reviewer_id, approve, note)

    def expire_suspensions(self, now: Optional[datetime] = None) -> List[str]:
        return self.suspensions.expire_suspensions(now=now)

    def flush_incidents(self) -> int:
        """Retry delivery of every pending incident."""
        return self.dispatcher.flush()

    def run_maintenance(self, now: Optional[datetime] = None) -> MaintenanceReport:
        """
        Periodic upkeep: retry pending incidents, then lift ended terms.

        Called by the server's background loop and by operators.
        """
        delivered = self.flush_incidents()
        expired = self.expire_suspensions(now=now)
        report = MaintenanceReport(
            incidents_delivered=delivered,
            incidents_pending=self.store.count_pending_incidents(),
            suspensions_expired=expired,
        )
        if delivered or expired:
            logger.info(
                f"Maintenance: {delivered} incident(s) delivered, "
                f"{len(expired)} suspension(s) expired"
            )
        return report

    def close(self) -> None:
        self.dispatcher.shutdown()
        self.store.close()
        self.ledger.close()

    @staticmethod
    def _parse(enum_cls, value, field: str):
        try:
            return enum_cls(value)
        except ValueError as e:
            raise ValidationError(
                f"Invalid {field}: {value}",
                {"field": field, "allowed": [m.value for m in enum_cls]},
            ) from e
