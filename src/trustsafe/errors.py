"""
Error taxonomy for the Trust & Safety Engine.

Every error carries a machine-readable message and optional details so the
HTTP layer can surface them without string parsing.
"""

from typing import Any, Dict, Optional


class TrustSafetyError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Validation: rejected synchronously, nothing persisted

class ValidationError(TrustSafetyError):
    """Malformed input."""


class InvalidActorError(ValidationError):
    """Reporter and reported actor are the same account."""


class AppealNotAllowedError(ValidationError):
    """The active suspension was opened as non-appealable."""


# Conflict: caller retries from scratch

class ConflictError(TrustSafetyError):
    """A concurrent write won the race or a uniqueness rule was hit."""


class ConcurrentUpdateError(ConflictError):
    """Compare-and-set on an actor record failed."""


class AppealAlreadyPendingError(ConflictError):
    """An unresolved appeal already exists for the active suspension."""


class InvalidReportTransitionError(ConflictError):
    """Report status change not allowed by the report lifecycle."""


# Not found: no partial state left behind

class NotFoundError(TrustSafetyError):
    """Referenced entity does not exist."""


class ReportNotFoundError(NotFoundError):
    pass


class AppealNotFoundError(NotFoundError):
    pass


class NoActiveSuspensionError(NotFoundError):
    """Operation requires an active suspension and there is none."""


class DegradedDetectionError(TrustSafetyError):
    """A matcher could not process its input. Never escapes the scanner."""
