"""Hash-chained audit trail of enforcement decisions."""

from trustsafe.ledger.ledger import AuditLedger
from trustsafe.ledger.models import AuditEvent, ChainReport, EventType

__all__ = [
    "AuditLedger",
    "AuditEvent",
    "ChainReport",
    "EventType",
]
