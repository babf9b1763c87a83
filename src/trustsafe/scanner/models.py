"""Contact detection models."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ContactType(str, Enum):
    """Kinds of off-platform contact information."""

    PHONE = "phone"
    EMAIL = "email"
    MESSAGING_APP = "messaging_app"      # WhatsApp, Telegram, ...
    CONTACT_REQUEST = "contact_request"  # "call me", "meu número", ...
    SOCIAL_MEDIA = "social_media"        # Instagram, @handles, ...
    URL = "url"


class Severity(str, Enum):
    """Detection severity. Drives the chat response."""

    NONE = "none"      # Nothing found
    LOW = "low"        # Informational only
    MEDIUM = "medium"  # Deliver with warning
    HIGH = "high"      # Block delivery, record violation

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.NONE: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
}


class Detection(BaseModel):
    """A single matcher hit."""

    matcher: str = Field(description="Name of the matcher that fired")
    contact_type: ContactType = Field(description="What was detected")
    severity: Severity = Field(description="Severity of this hit")
    matched_text: str = Field(description="Matched span of the message")


class DetectionResult(BaseModel):
    """Outcome of scanning one message."""

    category: Optional[ContactType] = Field(default=None, description="Category of the strongest hit")
    severity: Severity = Field(default=Severity.NONE)
    matched_text: Optional[str] = Field(default=None)
    detections: List[Detection] = Field(default_factory=list)
    degraded: bool = Field(default=False, description="A matcher failed on this input")

    @property
    def is_clean(self) -> bool:
        return self.severity == Severity.NONE

    def should_block(self) -> bool:
        """High severity messages are never delivered."""
        return self.severity == Severity.HIGH

    def should_warn(self) -> bool:
        return self.severity in (Severity.MEDIUM, Severity.LOW)
