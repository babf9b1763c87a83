"""Store module: SQLite persistence for trust & safety records."""

from trustsafe.store.models import (
    ActorRole,
    ActorRecord,
    ViolationCategory,
    VIOLATION_WEIGHTS,
    ViolationRecord,
    SuspensionKind,
    SuspensionRecord,
    AppealStatus,
    AppealRecord,
    BadgeRecord,
    BookingOutcome,
    BookingOutcomeRecord,
)
from trustsafe.store.store import TrustStore

__all__ = [
    "ActorRole",
    "ActorRecord",
    "ViolationCategory",
    "VIOLATION_WEIGHTS",
    "ViolationRecord",
    "SuspensionKind",
    "SuspensionRecord",
    "AppealStatus",
    "AppealRecord",
    "BadgeRecord",
    "BookingOutcome",
    "BookingOutcomeRecord",
    "TrustStore",
]
