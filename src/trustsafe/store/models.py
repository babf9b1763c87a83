"""Persisted records for actors, violations, suspensions, appeals and badges."""

import uuid
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from trustsafe.scoring.models import SafetyStatus, SuspensionReason, BadgeType


class ActorRole(str, Enum):
    """Side of the marketplace."""

    CLIENT = "client"
    SUPPLIER = "supplier"


class ActorRecord(BaseModel):
    """
    Trust profile of a single account.

    The stored `status` is the last observed state; entry side effects
    fire only when a re-evaluation disagrees with it.
    """

    actor_id: str = Field(description="Account identifier")
    role: ActorRole = Field(default=ActorRole.CLIENT)

    # Safety standing
    safety_score: float = Field(default=100.0, ge=0.0, le=100.0)
    status: SafetyStatus = Field(default=SafetyStatus.SAFE)
    is_active: bool = Field(default=True)
    status_changed_at: Optional[datetime] = Field(default=None)

    # Monotonic counters
    violation_count: int = Field(default=0, ge=0)
    last_violation_at: Optional[datetime] = Field(default=None)
    warning_count: int = Field(default=0, ge=0)
    last_warning_at: Optional[datetime] = Field(default=None)

    # Rating aggregate
    rating_sum: float = Field(default=0.0, ge=0.0)
    rating_count: int = Field(default=0, ge=0)

    # Booking aggregate
    bookings_total: int = Field(default=0, ge=0)
    bookings_completed: int = Field(default=0, ge=0)
    bookings_cancelled: int = Field(default=0, ge=0)
    bookings_no_show: int = Field(default=0, ge=0)

    response_rate: float = Field(default=0.85, ge=0.0, le=1.0)
    is_verified: bool = Field(default=False)

    # Set when a reviewer lifts a suspension
    reinstated_at: Optional[datetime] = Field(default=None)
    reinstated_score: Optional[float] = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Compare-and-set counter
    version: int = Field(default=0, ge=0)

    @property
    def rating_avg(self) -> float:
        if self.rating_count == 0:
            return 0.0
        return self.rating_sum / self.rating_count

    @property
    def completion_rate(self) -> float:
        if self.bookings_total == 0:
            return 1.0
        return self.bookings_completed / self.bookings_total

    @property
    def cancellation_rate(self) -> float:
        if self.bookings_total == 0:
            return 0.0
        return self.bookings_cancelled / self.bookings_total

    def account_age_days(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(UTC)
        return max(0, (now - self.created_at).days)


class ViolationCategory(str, Enum):
    """Platform rule violations."""

    CONTACT_SHARING = "contact_sharing"
    SPAM = "spam"
    INAPPROPRIATE = "inappropriate"
    NO_SHOW = "no_show"


# Severity-implied weights (informational, not part of the score formula)
VIOLATION_WEIGHTS = {
    ViolationCategory.CONTACT_SHARING: 0.5,
    ViolationCategory.SPAM: 0.3,
    ViolationCategory.INAPPROPRIATE: 0.4,
    ViolationCategory.NO_SHOW: 0.2,
}


class ViolationRecord(BaseModel):
    """Immutable record of a rule violation."""

    violation_id: str = Field(
        default_factory=lambda: f"violation_{uuid.uuid4().hex[:12]}",
    )
    actor_id: str
    category: ViolationCategory
    weight: float = Field(description="Severity weight for this category")
    description: str = Field(default="")
    source_ref: Optional[str] = Field(default=None, description="Message or report that produced it")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SuspensionKind(str, Enum):
    PROBATION = "probation"
    SUSPENSION = "suspension"


class SuspensionRecord(BaseModel):
    """A probation or suspension period. Closed, never deleted."""

    suspension_id: str = Field(
        default_factory=lambda: f"suspension_{uuid.uuid4().hex[:12]}",
    )
    actor_id: str
    kind: SuspensionKind = Field(default=SuspensionKind.SUSPENSION)
    reason: SuspensionReason
    details: Optional[str] = Field(default=None)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    ends_at: Optional[datetime] = Field(default=None, description="None means pending review")
    appealable: bool = Field(default=True)

    active: bool = Field(default=True)
    lifted_at: Optional[datetime] = Field(default=None)
    lifted_by: Optional[str] = Field(default=None)
    lift_note: Optional[str] = Field(default=None)

    def is_expired(self, now: datetime) -> bool:
        return self.active and self.ends_at is not None and self.ends_at <= now


class AppealStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class AppealRecord(BaseModel):
    """Actor's request to lift an active probation or suspension."""

    appeal_id: str = Field(
        default_factory=lambda: f"appeal_{uuid.uuid4().hex[:12]}",
    )
    actor_id: str
    suspension_id: str
    message: str
    status: AppealStatus = Field(default=AppealStatus.PENDING)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    reviewer_id: Optional[str] = Field(default=None)
    resolved_at: Optional[datetime] = Field(default=None)
    resolution_note: Optional[str] = Field(default=None)


class BadgeRecord(BaseModel):
    """Badge awarded to an actor. Append-only."""

    actor_id: str
    badge_type: BadgeType
    awarded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class BookingOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class BookingOutcomeRecord(BaseModel):
    """Last outcome seen for a booking, so replays and changes stay consistent."""

    booking_id: str
    actor_id: str
    outcome: BookingOutcome
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
