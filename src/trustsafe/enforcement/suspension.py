"""Suspension Manager - suspensions, reactivations and appeals."""

import logging
from datetime import datetime, timedelta, UTC
from typing import List, Optional

from trustsafe.enforcement.pipeline import (
    ActorPipeline,
    PipelineContext,
    PipelineResult,
    SYSTEM_REVIEWER,
)
from trustsafe.errors import (
    AppealNotAllowedError,
    AppealNotFoundError,
    ConflictError,
    NoActiveSuspensionError,
    ValidationError,
)
from trustsafe.ledger.models import EventType
from trustsafe.scoring.models import SuspensionReason
from trustsafe.store.models import (
    AppealRecord,
    AppealStatus,
    SuspensionKind,
    SuspensionRecord,
)


logger = logging.getLogger(__name__)


class SuspensionManager:
    """
    Executes suspensions and handles the appeal workflow.

    The score is never reset by a reactivation; status is recomputed
    from current facts, with score-only escalation held back until the
    score falls below the value it had at reinstatement or the actor
    returns to Safe. Closing a record supersedes its pending appeals.
    """

    def __init__(self, store, pipeline: ActorPipeline, ledger=None):
        self.store = store
        self.pipeline = pipeline
        self.ledger = ledger

    def suspend(
        self,
        actor_id: str,
        reason: SuspensionReason,
        details: Optional[str] = None,
        duration: Optional[timedelta] = None,
        appealable: bool = True,
    ) -> SuspensionRecord:
        """
        Suspend an actor.

        Idempotent: an already active suspension only has its details and
        end time updated. An open probation record is replaced.

        Args:
            actor_id: Actor to suspend
            reason: Why
            details: Free-text details for reviewers
            duration: Fixed term; None means until a reviewer acts
            appealable: Whether the actor may appeal

        Returns:
            The active SuspensionRecord
        """
        reason = SuspensionReason(reason)

        def mutate(ctx: PipelineContext) -> None:
            ends_at = ctx.now + duration if duration is not None else None
            record = ctx.active_record

            if record is not None and record.kind == SuspensionKind.SUSPENSION:
                ctx.touch_record(record.model_copy(update={
                    "details": details if details is not None else record.details,
                    "ends_at": ends_at if duration is not None else record.ends_at,
                }))
            else:
                ctx.open_record(
                    SuspensionKind.SUSPENSION,
                    reason,
                    details=details,
                    ends_at=ends_at,
                    appealable=appealable,
                )

            ctx.result = ctx.active_record

        result = self.pipeline.run(actor_id, mutate=mutate)
        record = result.result

        logger.warning(f"Account suspended: {actor_id} [{record.reason.value}]")

        return record

    def reactivate(self, actor_id: str, reviewer_id: str, note: Optional[str] = None) -> PipelineResult:
        """
        Lift the active probation or suspension record.

        Raises:
            NoActiveSuspensionError: Nothing to lift
        """
        result = self.pipeline.run(actor_id, mutate=self._reactivation(reviewer_id, note))

        logger.info(
            f"Account reactivated: {actor_id} by {reviewer_id} "
            f"(status {result.actor.status.value}, score {result.actor.safety_score:.1f})"
        )
        return result

    def _reactivation(self, reviewer_id: str, note: Optional[str], appeal: Optional[AppealRecord] = None):
        def mutate(ctx: PipelineContext) -> None:
            record = ctx.active_record
            if record is None:
                raise NoActiveSuspensionError(
                    f"No active suspension for {ctx.actor.actor_id}",
                    {"actor_id": ctx.actor.actor_id},
                )
            if appeal is not None and appeal.suspension_id != record.suspension_id:
                raise ConflictError(
                    f"Appeal {appeal.appeal_id} does not target the active record",
                    {"appeal_id": appeal.appeal_id, "suspension_id": record.suspension_id},
                )

            closed = ctx.close_record(reviewer_id, note)
            ctx.reinstating = True
            ctx.result = closed
            ctx.emit(
                EventType.ACCOUNT_REACTIVATED,
                {"reviewer_id": reviewer_id, "note": note, "kind": closed.kind.value},
                reference_id=closed.suspension_id,
            )
        return mutate

    def submit_appeal(self, actor_id: str, message: str) -> AppealRecord:
        """
        Appeal the active probation or suspension record.

        Raises:
            NoActiveSuspensionError: No active record
            AppealNotAllowedError: The record was opened as non-appealable
            AppealAlreadyPendingError: An appeal is already waiting for review
        """
        if not message or not message.strip():
            raise ValidationError("Appeal message must not be empty")

        # Check and insert under one write lock
        with self.store.transaction():
            record = self.store.get_active_suspension(actor_id)
            if record is None:
                raise NoActiveSuspensionError(
                    f"No active suspension for {actor_id}",
                    {"actor_id": actor_id},
                )
            if not record.appealable:
                raise AppealNotAllowedError(
                    f"Suspension {record.suspension_id} is not appealable",
                    {"suspension_id": record.suspension_id},
                )

            appeal = AppealRecord(
                actor_id=actor_id,
                suspension_id=record.suspension_id,
                message=message.strip(),
            )
            self.store.insert_appeal(appeal)

        logger.info(f"Appeal submitted: {appeal.appeal_id} for {record.suspension_id}")
        self._log(
            EventType.APPEAL_SUBMITTED,
            {"suspension_id": record.suspension_id},
            actor_id,
            appeal.appeal_id,
        )
        return appeal

    def resolve_appeal(
        self,
        appeal_id: str,
        reviewer_id: str,
        approve: bool,
        note: Optional[str] = None,
    ) -> AppealRecord:
        """
        Approve or reject a pending appeal.

        Approval reactivates the actor in the same transaction; rejection
        leaves the record in place and allows a new appeal later.
        """
        appeal = self.store.get_appeal(appeal_id)
        if appeal is None:
            raise AppealNotFoundError(f"Appeal not found: {appeal_id}", {"appeal_id": appeal_id})
        if appeal.status != AppealStatus.PENDING:
            raise ConflictError(
                f"Appeal {appeal_id} already {appeal.status.value}",
                {"appeal_id": appeal_id},
            )

        resolved = appeal.model_copy(update={
            "status": AppealStatus.APPROVED if approve else AppealStatus.REJECTED,
            "reviewer_id": reviewer_id,
            "resolved_at": datetime.now(UTC),
            "resolution_note": note,
        })

        if approve:
            reactivate = self._reactivation(reviewer_id, note, appeal=appeal)

            def mutate(ctx: PipelineContext) -> None:
                reactivate(ctx)
                ctx.stage(lambda store: store.update_appeal(resolved, AppealStatus.PENDING))

            self.pipeline.run(appeal.actor_id, mutate=mutate)
        else:
            with self.store.transaction():
                self.store.update_appeal(resolved, AppealStatus.PENDING)

        logger.info(f"Appeal {appeal_id} {resolved.status.value} by {reviewer_id}")
        self._log(
            EventType.APPEAL_RESOLVED,
            {"status": resolved.status.value, "reviewer_id": reviewer_id, "note": note},
            appeal.actor_id,
            appeal_id,
        )
        return resolved

    def expire_suspensions(self, now: Optional[datetime] = None) -> List[str]:
        """
        Lift fixed-term suspensions whose end time has passed.

        Returns:
            Actor IDs that were lifted
        """
        now = now or datetime.now(UTC)
        lifted: List[str] = []

        for record in self.store.list_active_suspensions(SuspensionKind.SUSPENSION):
            if not record.is_expired(now):
                continue

            def mutate(ctx: PipelineContext, record=record) -> None:
                current = ctx.active_record
                # Replaced or lifted since listing
                if current is None or current.suspension_id != record.suspension_id:
                    return
                ctx.close_record(SYSTEM_REVIEWER, "Suspension term ended")
                ctx.reinstating = True
                ctx.result = record.suspension_id
                ctx.emit(
                    EventType.SUSPENSION_EXPIRED,
                    {"ends_at": record.ends_at.isoformat()},
                    reference_id=record.suspension_id,
                )

            result = self.pipeline.run(record.actor_id, mutate=mutate, now=now)
            if result.result is not None:
                lifted.append(record.actor_id)
                logger.info(f"Suspension expired: {record.suspension_id} ({record.actor_id})")

        return lifted

    def active_suspension(self, actor_id: str) -> Optional[SuspensionRecord]:
        return self.store.get_active_suspension(actor_id)

    def suspension_history(self, actor_id: str) -> List[SuspensionRecord]:
        """All probation and suspension records, oldest first."""
        return self.store.list_suspensions(actor_id)

    def pending_appeals(self) -> List[AppealRecord]:
        return self.store.list_pending_appeals()

    def _log(self, event_type: EventType, payload: dict, actor_id: str, reference_id: str) -> None:
        if self.ledger:
            self.ledger.log_event(event_type, payload, actor_id=actor_id, reference_id=reference_id)
