"""Contact Scanner module for off-platform contact detection."""

from trustsafe.scanner.models import ContactType, Severity, Detection, DetectionResult
from trustsafe.scanner.scanner import ContactScanner, default_matchers
from trustsafe.scanner.messages import warning_message

__all__ = [
    "ContactType",
    "Severity",
    "Detection",
    "DetectionResult",
    "ContactScanner",
    "default_matchers",
    "warning_message",
]
