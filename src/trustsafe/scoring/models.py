"""Scoring, status and badge models."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class SafetyStatus(str, Enum):
    """Account standing, derived from score and report history."""

    SAFE = "safe"              # Good standing
    WARNING = "warning"        # Minor issues, warning issued
    PROBATION = "probation"    # Monitored, still active
    SUSPENDED = "suspended"    # Deactivated pending appeal or expiry

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    SafetyStatus.SAFE: 0,
    SafetyStatus.WARNING: 1,
    SafetyStatus.PROBATION: 2,
    SafetyStatus.SUSPENDED: 3,
}


class SuspensionReason(str, Enum):
    """Why a probation or suspension record was opened."""

    LOW_RATING = "low_rating"
    CONTACT_SHARING = "contact_sharing"
    EXCESSIVE_CANCELLATIONS = "excessive_cancellations"
    REPORTS = "reports"
    FRAUD = "fraud"


class BadgeType(str, Enum):
    """Reputation badges."""

    VERIFIED = "verified"          # Identity verified
    TOP_RATED = "top_rated"        # Rating >= 4.8, 50+ reviews
    RELIABLE = "reliable"          # Completion >= 95%
    RESPONSIVE = "responsive"      # Response rate >= 90%
    PROFESSIONAL = "professional"  # No behaviour reports, 100+ bookings
    EXPERT = "expert"              # Established top supplier


class ScoreInputs(BaseModel):
    """Aggregate inputs to the score formula."""

    rating_avg: float = Field(default=0.0, description="Average review rating (0-5)")
    rating_count: int = Field(default=0, description="Number of reviews")
    critical_reports: int = Field(default=0, description="Critical reports counted against the actor")
    high_reports: int = Field(default=0, description="High reports counted against the actor")
    cancellation_rate: float = Field(default=0.0, description="Cancelled / total bookings")
    completion_rate: float = Field(default=1.0, description="Completed / total bookings")


class ScoreBreakdown(BaseModel):
    """Capped penalties that produced a score."""

    rating_penalty: float = 0.0
    report_penalty: float = 0.0
    cancellation_penalty: float = 0.0
    completion_penalty: float = 0.0
    score: float = Field(default=100.0, ge=0.0, le=100.0)

    @property
    def total_penalty(self) -> float:
        return (
            self.rating_penalty
            + self.report_penalty
            + self.cancellation_penalty
            + self.completion_penalty
        )


class StatusInputs(BaseModel):
    """Everything the status evaluator looks at."""

    breakdown: ScoreBreakdown = Field(description="Current score and its penalties")

    # Reports in pending / investigating / escalated
    unresolved_reports: int = 0
    # Reports a moderator has picked up (investigating / escalated)
    triaged_high_reports: int = 0
    triaged_critical_reports: int = 0

    # Contact-sharing violations inside the rolling window
    recent_contact_violations: int = 0

    # An active suspension pins the state until reactivation or expiry
    suspension_active: bool = False

    # Score at the last reinstatement, if any
    reinstated_score: Optional[float] = None

    @property
    def score(self) -> float:
        return self.breakdown.score


class StatusDecision(BaseModel):
    """Result of a status evaluation."""

    status: SafetyStatus
    reasons: List[str] = Field(default_factory=list)
    suspension_reason: Optional[SuspensionReason] = Field(
        default=None,
        description="Reason to record when the decision opens a probation/suspension",
    )


class BadgeInputs(BaseModel):
    """Aggregate inputs to badge evaluation."""

    role: str = "client"
    rating_avg: float = 0.0
    rating_count: int = 0
    completion_rate: float = 0.0
    response_rate: float = 0.0
    total_bookings: int = 0
    behavior_reports: int = 0
    account_age_days: int = 0
    is_verified: bool = False
