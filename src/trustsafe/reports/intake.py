"""Report Intake - two-way abuse reports with server-derived severity."""

import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from trustsafe.enforcement.pipeline import ActorPipeline, PipelineContext
from trustsafe.enforcement.violations import ViolationRecorder
from trustsafe.errors import (
    InvalidActorError,
    InvalidReportTransitionError,
    ReportNotFoundError,
    ValidationError,
)
from trustsafe.ledger.models import EventType
from trustsafe.reports.incidents import IncidentDispatcher
from trustsafe.reports.models import (
    IncidentRecord,
    REPORT_TRANSITIONS,
    ReportCategory,
    ReportRecord,
    ReportSeverity,
    ReportStats,
    ReportStatus,
    severity_for,
)
from trustsafe.store.models import ActorRole, ViolationCategory


logger = logging.getLogger(__name__)


ReportChange = Callable[[ReportRecord, PipelineContext], ReportRecord]


def _parse(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid {field}: {value}",
            {"field": field, "allowed": [m.value for m in enum_cls]},
        ) from e


class ReportIntake:
    """
    Accepts reports and drives their investigation lifecycle.

    Lifecycle: pending -> investigating -> resolved | dismissed | escalated.
    Escalation is allowed from any non-terminal state. Every change
    re-evaluates the reported actor in the same transaction.
    """

    def __init__(
        self,
        store,
        pipeline: ActorPipeline,
        dispatcher: Optional[IncidentDispatcher] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.dispatcher = dispatcher

    def submit_report(
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
        """
        File a report against another actor.

        Severity is derived from the category. Critical reports open an
        incident in the same transaction.

        Raises:
            InvalidActorError: Reporter and reported actor are the same
            ValidationError: Unknown category or role, or missing IDs
        """
        if not reporter_id or not reported_id:
            raise ValidationError("Reporter and reported actor IDs are required")
        if reporter_id == reported_id:
            raise InvalidActorError(
                "Actors cannot report themselves",
                {"actor_id": reporter_id},
            )

        category = _parse(ReportCategory, category, "category")
        reporter_role = _parse(ActorRole, reporter_role, "reporter_role")
        reported_role = _parse(ActorRole, reported_role, "reported_role")

        report = ReportRecord(
            reporter_id=reporter_id,
            reporter_role=reporter_role.value,
            reported_id=reported_id,
            reported_role=reported_role.value,
            booking_id=booking_id,
            review_id=review_id,
            conversation_id=conversation_id,
            category=category,
            severity=severity_for(category),
            reason=reason or "",
            evidence=list(evidence or ()),
        )
        incident = self._incident_for(report) if report.severity == ReportSeverity.CRITICAL else None

        def mutate(ctx: PipelineContext) -> None:
            ctx.put_report(report)
            ctx.emit(
                EventType.REPORT_SUBMITTED,
                {
                    "reporter_id": reporter_id,
                    "category": category.value,
                    "severity": report.severity.value,
                },
                reference_id=report.report_id,
            )
            if incident is not None:
                self._open_incident(ctx, incident)

        self.pipeline.run(reported_id, mutate=mutate, role=reported_role)

        if incident is not None:
            logger.warning(
                f"Critical report {report.report_id} against {reported_id} [{category.value}]"
            )
            self._dispatch()
        else:
            logger.info(
                f"Report submitted: {report.report_id} against {reported_id} "
                f"[{category.value}/{report.severity.value}]"
            )

        return report

    # ---- Operator workflow ----

    def assign(self, report_id: str, assignee_id: str) -> ReportRecord:
        """Pick up a pending report (pending -> investigating), or reassign it."""
        def change(report: ReportRecord, ctx: PipelineContext) -> ReportRecord:
            updated = report.model_copy(update={"assigned_to": assignee_id})
            if report.status == ReportStatus.INVESTIGATING:
                return updated
            self._check_transition(report, ReportStatus.INVESTIGATING)
            return self._with_status(updated, ReportStatus.INVESTIGATING, ctx.now)

        return self._update(report_id, change)

    def resolve(
        self,
        report_id: str,
        note: str,
        violation_category: Optional[ViolationCategory] = None,
    ) -> ReportRecord:
        """
        Close a report as a confirmed violation.

        With a violation category, a ViolationRecord is recorded against
        the reported actor and linked to the report.
        """
        def change(report: ReportRecord, ctx: PipelineContext) -> ReportRecord:
            self._check_transition(report, ReportStatus.RESOLVED)
            updated = report.model_copy(update={
                "resolution": note,
                "resolved_at": ctx.now,
            })
            if violation_category is not None:
                violation = ViolationRecorder.build(
                    report.reported_id,
                    violation_category,
                    f"Confirmed by report {report.report_id}: {note}",
                    source_ref=report.report_id,
                )
                ViolationRecorder.stage(ctx, violation)
                updated.violation_id = violation.violation_id
                updated.actions_taken = updated.actions_taken + [
                    f"violation:{violation.category.value}"
                ]
            return self._with_status(updated, ReportStatus.RESOLVED, ctx.now)

        return self._update(report_id, change)

    def dismiss(self, report_id: str, note: str) -> ReportRecord:
        """Close a report as not a violation. Dismissed reports stop counting."""
        def change(report: ReportRecord, ctx: PipelineContext) -> ReportRecord:
            self._check_transition(report, ReportStatus.DISMISSED)
            updated = report.model_copy(update={
                "resolution": note,
                "resolved_at": ctx.now,
            })
            return self._with_status(updated, ReportStatus.DISMISSED, ctx.now)

        return self._update(report_id, change)

    def escalate(self, report_id: str, note: Optional[str] = None) -> ReportRecord:
        """Hand a report to a higher authority. Severity becomes critical."""
        def change(report: ReportRecord, ctx: PipelineContext) -> ReportRecord:
            self._check_transition(report, ReportStatus.ESCALATED)
            updated = report.model_copy(update={
                "severity": ReportSeverity.CRITICAL,
                "resolution": note if note is not None else report.resolution,
            })
            if self.store.get_incident_for_report(report.report_id) is None:
                self._open_incident(ctx, self._incident_for(updated))
            return self._with_status(updated, ReportStatus.ESCALATED, ctx.now)

        report = self._update(report_id, change)
        self._dispatch()
        return report

    def add_action(self, report_id: str, action: str) -> ReportRecord:
        """Append a moderator action. Does not change the report status."""
        if not action or not action.strip():
            raise ValidationError("Action must not be empty")

        report = self.get_report(report_id)
        updated = report.model_copy(update={
            "actions_taken": report.actions_taken + [action.strip()],
        })
        with self.store.transaction():
            self.store.update_report(updated, report.status)
        return updated

    # ---- Queries ----

    def get_report(self, report_id: str) -> ReportRecord:
        report = self.store.get_report(report_id)
        if report is None:
            raise ReportNotFoundError(f"Report not found: {report_id}", {"report_id": report_id})
        return report

    def reports_against(self, actor_id: str) -> List[ReportRecord]:
        return self.store.list_reports_against(actor_id)

    def reports_by(self, actor_id: str) -> List[ReportRecord]:
        return self.store.list_reports_by(actor_id)

    def report_stats(self, actor_id: str) -> ReportStats:
        """Counts of reports against an actor by status, severity and category."""
        reports = self.store.list_reports_against(actor_id)
        statuses = Counter(r.status for r in reports)
        severities = Counter(r.severity for r in reports)

        return ReportStats(
            actor_id=actor_id,
            total_reports=len(reports),
            pending_count=statuses[ReportStatus.PENDING],
            investigating_count=statuses[ReportStatus.INVESTIGATING],
            resolved_count=statuses[ReportStatus.RESOLVED],
            dismissed_count=statuses[ReportStatus.DISMISSED],
            escalated_count=statuses[ReportStatus.ESCALATED],
            critical_count=severities[ReportSeverity.CRITICAL],
            high_count=severities[ReportSeverity.HIGH],
            medium_count=severities[ReportSeverity.MEDIUM],
            low_count=severities[ReportSeverity.LOW],
            category_breakdown=dict(Counter(r.category.value for r in reports)),
        )

    # ---- Internals ----

    def _update(self, report_id: str, change: ReportChange) -> ReportRecord:
        """Apply a change to a report and re-evaluate the reported actor."""
        reported_id = self.get_report(report_id).reported_id

        def mutate(ctx: PipelineContext) -> None:
            # Re-read on every attempt so retries see the latest status
            current = self.get_report(report_id)
            updated = change(current, ctx)
            ctx.put_report(updated, expected_status=current.status)

            if updated.status != current.status:
                ctx.emit(
                    EventType.REPORT_STATUS_CHANGED,
                    {"from": current.status.value, "to": updated.status.value},
                    reference_id=report_id,
                )
            ctx.result = updated

        result = self.pipeline.run(reported_id, mutate=mutate)
        report = result.result

        logger.info(f"Report {report_id} now {report.status.value}")
        return report

    @staticmethod
    def _check_transition(report: ReportRecord, target: ReportStatus) -> None:
        if target not in REPORT_TRANSITIONS[report.status]:
            raise InvalidReportTransitionError(
                f"Report {report.report_id} cannot move from {report.status.value} to {target.value}",
                {"report_id": report.report_id, "from": report.status.value, "to": target.value},
            )

    @staticmethod
    def _with_status(report: ReportRecord, status: ReportStatus, now: datetime) -> ReportRecord:
        return report.model_copy(update={"status": status, "updated_at": now})

    @staticmethod
    def _incident_for(report: ReportRecord) -> IncidentRecord:
        return IncidentRecord(
            report_id=report.report_id,
            reported_id=report.reported_id,
            category=report.category,
        )

    @staticmethod
    def _open_incident(ctx: PipelineContext, incident: IncidentRecord) -> None:
        ctx.add_incident(incident)
        ctx.emit(
            EventType.INCIDENT_OPENED,
            {"report_id": incident.report_id, "category": incident.category.value},
            reference_id=incident.incident_id,
        )

    def _dispatch(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch()
