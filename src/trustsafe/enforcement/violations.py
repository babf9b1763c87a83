"""Violation Recorder - the only writer of ViolationRecord."""

import logging
from datetime import datetime, UTC
from typing import Optional

from pydantic import BaseModel

from trustsafe.enforcement.pipeline import ActorPipeline, PipelineContext
from trustsafe.errors import ValidationError
from trustsafe.ledger.models import EventType
from trustsafe.scoring.models import SafetyStatus
from trustsafe.store.models import VIOLATION_WEIGHTS, ViolationCategory, ViolationRecord


logger = logging.getLogger(__name__)


class ViolationOutcome(BaseModel):
    """Recorded violation together with its effect on the actor."""

    violation: ViolationRecord
    violation_count: int
    previous_score: float
    safety_score: float
    previous_status: SafetyStatus
    status: SafetyStatus
    attempts: int = 1

    @property
    def score_delta(self) -> float:
        return self.safety_score - self.previous_score

    @property
    def status_changed(self) -> bool:
        return self.status != self.previous_status


def parse_category(category) -> ViolationCategory:
    try:
        return ViolationCategory(category)
    except ValueError as e:
        raise ValidationError(
            f"Unknown violation category: {category}",
            {"allowed": [c.value for c in ViolationCategory]},
        ) from e


class ViolationRecorder:
    """
    Appends immutable violations.

    Recording a violation, bumping the actor's counters and re-evaluating
    the actor happen in one compare-and-set transaction, so a retry never
    double-counts.
    """

    def __init__(self, pipeline: ActorPipeline):
        self.pipeline = pipeline

    def record_violation(
        self,
        actor_id: str,
        category: ViolationCategory,
        description: str,
        timestamp: Optional[datetime] = None,
        source_ref: Optional[str] = None,
    ) -> ViolationRecord:
        """Record a violation and return the stored record."""
        return self.record(actor_id, category, description, timestamp, source_ref).violation

    def record(
        self,
        actor_id: str,
        category: ViolationCategory,
        description: str,
        timestamp: Optional[datetime] = None,
        source_ref: Optional[str] = None,
    ) -> ViolationOutcome:
        """Record a violation and report how the actor moved."""
        violation = self.build(actor_id, category, description, timestamp, source_ref)

        def mutate(ctx: PipelineContext) -> None:
            self.stage(ctx, violation)

        result = self.pipeline.run(actor_id, mutate=mutate)

        logger.info(
            f"Violation recorded: {actor_id} [{violation.category.value}] "
            f"count={result.actor.violation_count} status={result.actor.status.value}"
        )

        return ViolationOutcome(
            violation=violation,
            violation_count=result.actor.violation_count,
            previous_score=result.previous_score,
            safety_score=result.actor.safety_score,
            previous_status=result.previous_status,
            status=result.actor.status,
            attempts=result.attempts,
        )

    @staticmethod
    def build(
        actor_id: str,
        category: ViolationCategory,
        description: str,
        timestamp: Optional[datetime] = None,
        source_ref: Optional[str] = None,
    ) -> ViolationRecord:
        """Create the record once so retries reuse the same ID."""
        category = parse_category(category)
        fields = dict(
            actor_id=actor_id,
            category=category,
            weight=VIOLATION_WEIGHTS[category],
            description=description or "",
            source_ref=source_ref,
        )
        if timestamp is not None:
            # Naive timestamps are taken as UTC
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=UTC)
            fields["created_at"] = timestamp
        return ViolationRecord(**fields)

    @staticmethod
    def stage(ctx: PipelineContext, violation: ViolationRecord) -> None:
        """Stage a violation inside another event's pipeline run."""
        actor = ctx.actor
        ctx.add_violation(violation)
        actor.violation_count += 1
        if actor.last_violation_at is None or violation.created_at > actor.last_violation_at:
            actor.last_violation_at = violation.created_at

        ctx.emit(
            EventType.VIOLATION_RECORDED,
            {
                "category": violation.category.value,
                "weight": violation.weight,
                "description": violation.description,
                "source_ref": violation.source_ref,
            },
            reference_id=violation.violation_id,
        )
