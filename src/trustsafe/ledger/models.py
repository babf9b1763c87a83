"""Audit trail records."""

import hashlib
import json
import uuid
from datetime import datetime, UTC
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


GENESIS_DIGEST = "genesis"


class EventType(str, Enum):
    """Enforcement decisions recorded in the audit trail."""

    MESSAGE_BLOCKED = "MESSAGE_BLOCKED"            # High-severity contact share
    CONTACT_FLAGGED = "CONTACT_FLAGGED"            # Medium-severity contact share
    VIOLATION_RECORDED = "VIOLATION_RECORDED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ACCOUNT_SUSPENDED = "ACCOUNT_SUSPENDED"
    ACCOUNT_REACTIVATED = "ACCOUNT_REACTIVATED"
    SUSPENSION_EXPIRED = "SUSPENSION_EXPIRED"
    APPEAL_SUBMITTED = "APPEAL_SUBMITTED"
    APPEAL_RESOLVED = "APPEAL_RESOLVED"            # Reviewer verdict or superseded
    REPORT_SUBMITTED = "REPORT_SUBMITTED"
    REPORT_STATUS_CHANGED = "REPORT_STATUS_CHANGED"
    INCIDENT_OPENED = "INCIDENT_OPENED"
    BADGE_AWARDED = "BADGE_AWARDED"


class AuditEvent(BaseModel):
    """
    One enforcement decision, linked to the event before it.

    `digest` covers every other field, attribution included.
    """

    event_id: str = Field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    event_type: EventType
    actor_id: Optional[str] = Field(default=None, description="Account the event is about")
    reference_id: Optional[str] = Field(
        default=None,
        description="Message, report, suspension or appeal behind the event",
    )
    payload: dict = Field(default_factory=dict)
    prev_digest: str = Field(default=GENESIS_DIGEST)
    digest: str = Field(default="")

    def expected_digest(self) -> str:
        body = self.model_dump(mode="json", exclude={"digest"})
        encoded = json.dumps(body, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode()).hexdigest()

    def sealed(self) -> "AuditEvent":
        return self.model_copy(update={"digest": self.expected_digest()})


class ChainReport(BaseModel):
    """Outcome of walking the audit trail from the first event."""

    is_valid: bool
    checked: int = Field(description="Events walked before stopping")
    broken_at_seq: Optional[int] = Field(default=None, description="Sequence number of the first bad event")
    reason: Optional[str] = None
