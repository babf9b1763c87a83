"""Actor pipeline - the one read-modify-write path for actor state.

Every event that can move an actor runs through `ActorPipeline.run`:

1. Read the actor snapshot (with its version) and its open record
2. Apply the event's mutation to a working copy
3. Score -> status -> entry side effects -> badges
4. Write everything in one transaction, guarded by compare-and-set

A lost race rolls back and the whole pipeline runs again from step 1.
Ledger events are emitted only after a successful commit.
"""

import logging
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from trustsafe.config import EngineSettings, config as default_config
from trustsafe.errors import ConcurrentUpdateError
from trustsafe.ledger.models import EventType
from trustsafe.reports.models import (
    BEHAVIOR_CATEGORIES,
    IncidentRecord,
    ReportRecord,
    ReportSeverity,
    ReportStatus,
    TRIAGED_STATUSES,
)
from trustsafe.scoring.badges import BadgeEvaluator
from trustsafe.scoring.calculator import ScoreCalculator
from trustsafe.scoring.models import (
    BadgeInputs,
    BadgeType,
    SafetyStatus,
    ScoreBreakdown,
    StatusDecision,
    StatusInputs,
    SuspensionReason,
)
from trustsafe.scoring.status import StatusEvaluator
from trustsafe.store.models import (
    ActorRecord,
    ActorRole,
    BadgeRecord,
    SuspensionKind,
    SuspensionRecord,
    ViolationCategory,
    ViolationRecord,
)


logger = logging.getLogger(__name__)


SYSTEM_REVIEWER = "system"


class PipelineContext:
    """
    Working state for one pipeline attempt.

    Mutations edit `actor` and stage writes here; nothing touches the
    store until the pipeline commits.
    """

    def __init__(
        self,
        actor: ActorRecord,
        active_record: Optional[SuspensionRecord],
        now: datetime,
    ):
        self.actor = actor
        self.active_record = active_record
        self.now = now

        self.violations: List[ViolationRecord] = []
        self.reports: Dict[str, Tuple[ReportRecord, Optional[ReportStatus]]] = {}
        self.incidents: List[IncidentRecord] = []
        self.suspension_writes: Dict[str, SuspensionRecord] = {}
        self.new_suspension_ids: Set[str] = set()
        self.operations: List[Callable[[Any], None]] = []
        self.events: List[Tuple[EventType, dict, Optional[str]]] = []

        # Set when a reviewer or an expired term lifts the open record
        self.reinstating = False

        # Value handed back to the caller of `run`
        self.result: Any = None

    def add_violation(self, violation: ViolationRecord) -> None:
        self.violations.append(violation)

    def put_report(self, report: ReportRecord, expected_status: Optional[ReportStatus] = None) -> None:
        """Stage a report insert (no expected status) or a guarded update."""
        self.reports[report.report_id] = (report, expected_status)

    def add_incident(self, incident: IncidentRecord) -> None:
        self.incidents.append(incident)

    def stage(self, operation: Callable[[Any], None]) -> None:
        """Run `operation(store)` inside the commit transaction."""
        self.operations.append(operation)

    def emit(self, event_type: EventType, payload: dict, reference_id: Optional[str] = None) -> None:
        self.events.append((event_type, payload, reference_id))

    def open_record(
        self,
        kind: SuspensionKind,
        reason: SuspensionReason,
        details: Optional[str] = None,
        ends_at: Optional[datetime] = None,
        appealable: bool = True,
    ) -> SuspensionRecord:
        """Open a probation/suspension record, closing any open one first."""
        if self.active_record is not None:
            self.close_record(SYSTEM_REVIEWER, f"Replaced by {kind.value}")

        record = SuspensionRecord(
            actor_id=self.actor.actor_id,
            kind=kind,
            reason=reason,
            details=details,
            started_at=self.now,
            ends_at=ends_at,
            appealable=appealable,
        )
        self.active_record = record
        self.suspension_writes[record.suspension_id] = record
        self.new_suspension_ids.add(record.suspension_id)

        if kind == SuspensionKind.SUSPENSION:
            self.emit(
                EventType.ACCOUNT_SUSPENDED,
                {
                    "reason": reason.value,
                    "details": details,
                    "ends_at": ends_at.isoformat() if ends_at else None,
                },
                reference_id=record.suspension_id,
            )
        return record

    def close_record(self, lifted_by: str, note: Optional[str] = None) -> Optional[SuspensionRecord]:
        """Close the open record. Closed rows are kept."""
        record = self.active_record
        if record is None:
            return None

        record = record.model_copy(update={
            "active": False,
            "lifted_at": self.now,
            "lifted_by": lifted_by,
            "lift_note": note,
        })
        self.suspension_writes[record.suspension_id] = record
        self.active_record = None
        return record

    def touch_record(self, record: SuspensionRecord) -> None:
        """Stage an in-place update of the open record."""
        self.active_record = record
        self.suspension_writes[record.suspension_id] = record


class PipelineResult:
    """What a committed pipeline run produced."""

    def __init__(
        self,
        actor: ActorRecord,
        previous_status: SafetyStatus,
        decision: StatusDecision,
        breakdown: ScoreBreakdown,
        previous_score: float,
        awarded_badges: Set[BadgeType],
        result: Any,
        attempts: int,
    ):
        self.actor = actor
        self.previous_status = previous_status
        self.decision = decision
        self.breakdown = breakdown
        self.previous_score = previous_score
        self.awarded_badges = awarded_badges
        self.result = result
        self.attempts = attempts

    @property
    def status_changed(self) -> bool:
        return self.actor.status != self.previous_status

    @property
    def score_delta(self) -> float:
        return self.actor.safety_score - self.previous_score


Mutation = Callable[[PipelineContext], None]


class ActorPipeline:
    """
    Optimistic read-modify-write of one actor.

    Combines the Score Calculator, Status Evaluator and Badge Evaluator,
    applies entry side effects on state changes, and commits with
    compare-and-set, retrying the whole run on conflict.
    """

    def __init__(
        self,
        store,
        ledger=None,
        calculator: Optional[ScoreCalculator] = None,
        evaluator: Optional[StatusEvaluator] = None,
        badge_evaluator: Optional[BadgeEvaluator] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.settings = settings or default_config
        self.calculator = calculator or ScoreCalculator()
        self.evaluator = evaluator or StatusEvaluator(
            contact_violation_threshold=self.settings.contact_violation_threshold,
        )
        self.badge_evaluator = badge_evaluator or BadgeEvaluator()
        self.max_attempts = max(1, self.settings.cas_max_retries)
        self.contact_window = timedelta(days=self.settings.contact_violation_window_days)

    def run(
        self,
        actor_id: str,
        mutate: Optional[Mutation] = None,
        role: Optional[ActorRole] = None,
        now: Optional[datetime] = None,
    ) -> PipelineResult:
        """
        Run the pipeline for one actor.

        Args:
            actor_id: Actor to re-evaluate (created on first touch)
            mutate: Event-specific changes, re-applied on every attempt
            role: Role to create the actor with if it does not exist yet
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            PipelineResult of the committed attempt

        Raises:
            ConcurrentUpdateError: Every attempt lost the race
        """
        last_error: Optional[ConcurrentUpdateError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = self._attempt(actor_id, mutate, role, now or datetime.now(UTC))
            except ConcurrentUpdateError as e:
                last_error = e
                logger.warning(
                    f"Concurrent update on {actor_id} (attempt {attempt}/{self.max_attempts}): {e.message}"
                )
                continue

            result.attempts = attempt
            return result

        logger.error(f"Giving up on {actor_id} after {self.max_attempts} attempts")
        raise last_error

    def evaluate(self, actor_id: str, now: Optional[datetime] = None) -> PipelineResult:
        """Re-evaluate an actor with no event attached."""
        return self.run(actor_id, now=now)

    def _attempt(
        self,
        actor_id: str,
        mutate: Optional[Mutation],
        role: Optional[ActorRole],
        now: datetime,
    ) -> PipelineResult:
        snapshot = self.store.ensure_actor(actor_id, role)
        ctx = PipelineContext(
            actor=snapshot.model_copy(deep=True),
            active_record=self.store.get_active_suspension(actor_id),
            now=now,
        )

        if mutate is not None:
            mutate(ctx)

        if ctx.reinstating:
            ctx.actor.reinstated_at = now

        reports = self._merged_reports(ctx)
        breakdown = self.score_for(ctx.actor, reports)

        if ctx.reinstating:
            ctx.actor.reinstated_score = breakdown.score

        decision = self.evaluator.evaluate(
            self._status_inputs(ctx, reports, breakdown)
        )

        self._apply_transition(ctx, snapshot.status, decision)

        # Back to Safe: score rules apply in full again
        if decision.status == SafetyStatus.SAFE:
            ctx.actor.reinstated_score = None
        ctx.actor.safety_score = breakdown.score

        awarded = self._award_badges(ctx, reports)

        saved = self._commit(ctx, snapshot.version, awarded)

        if saved.status != snapshot.status:
            logger.info(
                f"Status change: {actor_id} {snapshot.status.value} -> {saved.status.value} "
                f"(score {saved.safety_score:.1f})"
            )

        self._emit_events(ctx)

        return PipelineResult(
            actor=saved,
            previous_status=snapshot.status,
            decision=decision,
            breakdown=breakdown,
            previous_score=snapshot.safety_score,
            awarded_badges=awarded,
            result=ctx.result,
            attempts=1,
        )

    def _merged_reports(self, ctx: PipelineContext) -> List[ReportRecord]:
        """Stored reports against the actor overlaid with staged ones."""
        reports = {r.report_id: r for r in self.store.list_reports_against(ctx.actor.actor_id)}
        for report_id, (report, _) in ctx.reports.items():
            if report.reported_id == ctx.actor.actor_id:
                reports[report_id] = report
        return list(reports.values())

    def score_for(self, actor: ActorRecord, reports: List[ReportRecord]) -> ScoreBreakdown:
        """Score breakdown for an actor; dismissed reports do not count."""
        counted = [r for r in reports if r.status != ReportStatus.DISMISSED]
        return self.calculator.breakdown(
            rating_avg=actor.rating_avg,
            rating_count=actor.rating_count,
            critical_reports=sum(1 for r in counted if r.severity == ReportSeverity.CRITICAL),
            high_reports=sum(1 for r in counted if r.severity == ReportSeverity.HIGH),
            cancellation_rate=actor.cancellation_rate,
            completion_rate=actor.completion_rate,
        )

    def _status_inputs(
        self,
        ctx: PipelineContext,
        reports: List[ReportRecord],
        breakdown: ScoreBreakdown,
    ) -> StatusInputs:
        actor = ctx.actor

        # Report overrides restart at reinstatement
        triaged = [r for r in reports if r.status in TRIAGED_STATUSES]
        if actor.reinstated_at is not None:
            triaged = [r for r in triaged if r.updated_at > actor.reinstated_at]

        window_start = ctx.now - self.contact_window
        if actor.reinstated_at is not None and actor.reinstated_at > window_start:
            window_start = actor.reinstated_at

        recent_contact = self.store.count_violations_since(
            actor.actor_id, ViolationCategory.CONTACT_SHARING, window_start,
        )
        recent_contact += sum(
            1 for v in ctx.violations
            if v.category == ViolationCategory.CONTACT_SHARING and v.created_at >= window_start
        )

        record = ctx.active_record
        return StatusInputs(
            breakdown=breakdown,
            unresolved_reports=sum(1 for r in reports if r.status.is_unresolved),
            triaged_high_reports=sum(1 for r in triaged if r.severity == ReportSeverity.HIGH),
            triaged_critical_reports=sum(1 for r in triaged if r.severity == ReportSeverity.CRITICAL),
            recent_contact_violations=recent_contact,
            suspension_active=record is not None and record.kind == SuspensionKind.SUSPENSION,
            reinstated_score=actor.reinstated_score,
        )

    def _apply_transition(
        self,
        ctx: PipelineContext,
        previous: SafetyStatus,
        decision: StatusDecision,
    ) -> None:
        """Entry side effects. Fire only when the state actually changes."""
        actor = ctx.actor
        status = decision.status
        actor.is_active = status != SafetyStatus.SUSPENDED

        if status == previous:
            return

        actor.status = status
        actor.status_changed_at = ctx.now
        reason = decision.suspension_reason or SuspensionReason.REPORTS
        record = ctx.active_record

        if status == SafetyStatus.WARNING:
            actor.warning_count += 1
            actor.last_warning_at = ctx.now

        elif status == SafetyStatus.PROBATION:
            if record is None:
                ctx.open_record(
                    SuspensionKind.PROBATION,
                    reason,
                    details="; ".join(decision.reasons) or None,
                )

        elif status == SafetyStatus.SUSPENDED:
            if record is None or record.kind != SuspensionKind.SUSPENSION:
                ctx.open_record(
                    SuspensionKind.SUSPENSION,
                    reason,
                    details="; ".join(decision.reasons) or None,
                )

        if status in (SafetyStatus.SAFE, SafetyStatus.WARNING):
            if record is not None and record.kind == SuspensionKind.PROBATION:
                ctx.close_record(SYSTEM_REVIEWER, f"Status improved to {status.value}")

        ctx.emit(
            EventType.STATUS_CHANGED,
            {
                "from": previous.value,
                "to": status.value,
                "reasons": decision.reasons,
            },
        )

    def _award_badges(self, ctx: PipelineContext, reports: List[ReportRecord]) -> Set[BadgeType]:
        actor = ctx.actor
        inputs = BadgeInputs(
            role=actor.role.value,
            rating_avg=actor.rating_avg,
            rating_count=actor.rating_count,
            completion_rate=actor.completion_rate,
            response_rate=actor.response_rate,
            total_bookings=actor.bookings_total,
            behavior_reports=sum(
                1 for r in reports
                if r.category in BEHAVIOR_CATEGORIES and r.status != ReportStatus.DISMISSED
            ),
            account_age_days=actor.account_age_days(ctx.now),
            is_verified=actor.is_verified,
        )
        earned = self.badge_evaluator.evaluate(inputs)
        awarded = BadgeEvaluator.new_badges(self.store.badge_types(actor.actor_id), earned)

        for badge in sorted(awarded, key=lambda b: b.value):
            ctx.emit(EventType.BADGE_AWARDED, {"badge": badge.value})
        return awarded

    def _commit(self, ctx: PipelineContext, expected_version: int, awarded: Set[BadgeType]) -> ActorRecord:
        store = self.store
        with store.transaction():
            for report, expected_status in ctx.reports.values():
                if expected_status is None:
                    store.insert_report(report)
                else:
                    store.update_report(report, expected_status)

            for incident in ctx.incidents:
                if not store.insert_incident(incident):
                    logger.debug(f"Incident already open for report {incident.report_id}")

            for violation in ctx.violations:
                store.insert_violation(violation)

            # Closes before inserts so the one-active-record index holds
            for suspension_id, record in ctx.suspension_writes.items():
                if suspension_id not in ctx.new_suspension_ids:
                    store.update_suspension(record)
            for suspension_id in ctx.new_suspension_ids:
                store.insert_suspension(ctx.suspension_writes[suspension_id])

            for badge in sorted(awarded, key=lambda b: b.value):
                store.insert_badge(BadgeRecord(
                    actor_id=ctx.actor.actor_id,
                    badge_type=badge,
                    awarded_at=ctx.now,
                ))

            for operation in ctx.operations:
                operation(store)

            # Appeals die with the record they target
            for suspension_id, record in ctx.suspension_writes.items():
                if record.active:
                    continue
                for appeal in store.supersede_pending_appeals(
                    suspension_id, ctx.now, record.lift_note or "Record closed",
                ):
                    ctx.emit(
                        EventType.APPEAL_RESOLVED,
                        {"status": appeal.status.value, "reviewer_id": SYSTEM_REVIEWER},
                        reference_id=appeal.appeal_id,
                    )

            return store.save_actor(ctx.actor, expected_version)

    def _emit_events(self, ctx: PipelineContext) -> None:
        if self.ledger is None:
            return
        for event_type, payload, reference_id in ctx.events:
            self.ledger.log_event(
                event_type,
                payload,
                actor_id=ctx.actor.actor_id,
                reference_id=reference_id,
            )
