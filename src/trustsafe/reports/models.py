"""Models for user-submitted abuse reports."""

import uuid
from datetime import datetime, UTC
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ReportSeverity(str, Enum):
    """Report severity (derived from category, never caller-supplied)."""

    LOW = "low"            # Spam, misleading info
    MEDIUM = "medium"      # Unprofessional behaviour, service disputes
    HIGH = "high"          # Harassment, discrimination, fraud
    CRITICAL = "critical"  # Safety threats, violence


class ReportStatus(str, Enum):
    """Report investigation lifecycle."""

    PENDING = "pending"              # Awaiting review
    INVESTIGATING = "investigating"  # Picked up by a moderator
    RESOLVED = "resolved"            # Violation confirmed and handled
    DISMISSED = "dismissed"          # Not a violation
    ESCALATED = "escalated"          # Handed to a higher authority

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_unresolved(self) -> bool:
        return self in UNRESOLVED_STATUSES


TERMINAL_STATUSES = frozenset({
    ReportStatus.RESOLVED,
    ReportStatus.DISMISSED,
    ReportStatus.ESCALATED,
})

UNRESOLVED_STATUSES = frozenset({
    ReportStatus.PENDING,
    ReportStatus.INVESTIGATING,
    ReportStatus.ESCALATED,
})

# A moderator has looked at it
TRIAGED_STATUSES = frozenset({
    ReportStatus.INVESTIGATING,
    ReportStatus.ESCALATED,
})

# Allowed forward transitions. ESCALATED is reachable from any non-terminal state.
REPORT_TRANSITIONS = {
    ReportStatus.PENDING: frozenset({ReportStatus.INVESTIGATING, ReportStatus.ESCALATED}),
    ReportStatus.INVESTIGATING: frozenset({
        ReportStatus.RESOLVED,
        ReportStatus.DISMISSED,
        ReportStatus.ESCALATED,
    }),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.DISMISSED: frozenset(),
    ReportStatus.ESCALATED: frozenset(),
}


class ReportCategory(str, Enum):
    """What the reporter is complaining about."""

    # Behaviour
    HARASSMENT = "harassment"
    DISCRIMINATION = "discrimination"
    UNPROFESSIONAL = "unprofessional"
    THREATENING = "threatening"

    # Service
    NO_SHOW = "no_show"
    POOR_QUALITY = "poor_quality"
    OVERCHARGING = "overcharging"
    UNDERDELIVERY = "underdelivery"

    # Platform misuse
    SPAM = "spam"
    FRAUD = "fraud"
    FAKE_PROFILE = "fake_profile"
    SCAM = "scam"

    # Safety
    SAFETY_THREAT = "safety_threat"
    VIOLENCE = "violence"
    INAPPROPRIATE = "inappropriate"

    OTHER = "other"


CATEGORY_SEVERITY = {
    ReportCategory.VIOLENCE: ReportSeverity.CRITICAL,
    ReportCategory.SAFETY_THREAT: ReportSeverity.CRITICAL,
    ReportCategory.THREATENING: ReportSeverity.CRITICAL,
    ReportCategory.HARASSMENT: ReportSeverity.HIGH,
    ReportCategory.DISCRIMINATION: ReportSeverity.HIGH,
    ReportCategory.FRAUD: ReportSeverity.HIGH,
    ReportCategory.SCAM: ReportSeverity.HIGH,
    ReportCategory.UNPROFESSIONAL: ReportSeverity.MEDIUM,
    ReportCategory.NO_SHOW: ReportSeverity.MEDIUM,
    ReportCategory.POOR_QUALITY: ReportSeverity.MEDIUM,
    ReportCategory.OVERCHARGING: ReportSeverity.MEDIUM,
    ReportCategory.UNDERDELIVERY: ReportSeverity.MEDIUM,
    ReportCategory.FAKE_PROFILE: ReportSeverity.MEDIUM,
    ReportCategory.INAPPROPRIATE: ReportSeverity.MEDIUM,
    ReportCategory.SPAM: ReportSeverity.LOW,
    ReportCategory.OTHER: ReportSeverity.LOW,
}

# Categories that count against the "professional" badge
BEHAVIOR_CATEGORIES = frozenset({
    ReportCategory.HARASSMENT,
    ReportCategory.DISCRIMINATION,
    ReportCategory.UNPROFESSIONAL,
    ReportCategory.THREATENING,
})


def severity_for(category: ReportCategory) -> ReportSeverity:
    """Fixed category to severity lookup."""
    return CATEGORY_SEVERITY[category]


class ReportRecord(BaseModel):
    """A report from one actor about another."""

    report_id: str = Field(
        default_factory=lambda: f"report_{uuid.uuid4().hex[:12]}",
        description="Unique report ID"
    )
    reporter_id: str = Field(description="Who submitted the report")
    reporter_role: str = Field(description="client or supplier")
    reported_id: str = Field(description="Who is being reported")
    reported_role: str = Field(description="client or supplier")

    # Context links
    booking_id: Optional[str] = Field(default=None)
    review_id: Optional[str] = Field(default=None)
    conversation_id: Optional[str] = Field(default=None)

    category: ReportCategory = Field(description="Report category")
    severity: ReportSeverity = Field(description="Derived severity")
    reason: str = Field(default="", description="Reporter's explanation")
    evidence: List[str] = Field(default_factory=list, description="Evidence references")

    # Investigation
    status: ReportStatus = Field(default=ReportStatus.PENDING)
    assigned_to: Optional[str] = Field(default=None)
    resolution: Optional[str] = Field(default=None)
    resolved_at: Optional[datetime] = Field(default=None)
    actions_taken: List[str] = Field(default_factory=list)
    violation_id: Optional[str] = Field(default=None, description="Violation produced by this report")

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Last status or severity change",
    )


class IncidentRecord(BaseModel):
    """Fast-path review signal raised for a critical report."""

    incident_id: str = Field(
        default_factory=lambda: f"incident_{uuid.uuid4().hex[:12]}",
    )
    report_id: str = Field(description="Report that raised the incident (unique)")
    reported_id: str
    category: ReportCategory
    severity: ReportSeverity = Field(default=ReportSeverity.CRITICAL)

    # Delivery tracking (at-least-once)
    delivered: bool = Field(default=False)
    attempts: int = Field(default=0)
    last_error: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    delivered_at: Optional[datetime] = Field(default=None)


class ReportStats(BaseModel):
    """Report counts for one reported actor."""

    actor_id: str
    total_reports: int = 0
    pending_count: int = 0
    investigating_count: int = 0
    resolved_count: int = 0
    dismissed_count: int = 0
    escalated_count: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    category_breakdown: dict = Field(default_factory=dict)

    @property
    def high_severity_percentage(self) -> float:
        """Share of reports that are critical or high."""
        if self.total_reports == 0:
            return 0.0
        return (self.critical_count + self.high_count) / self.total_reports
