"""Reports module: abuse report models and incident outbox.

The intake workflow lives in `trustsafe.reports.intake`.
"""

from trustsafe.reports.models import (
    ReportCategory,
    ReportSeverity,
    ReportStatus,
    ReportRecord,
    IncidentRecord,
    ReportStats,
    CATEGORY_SEVERITY,
    REPORT_TRANSITIONS,
    severity_for,
)
from trustsafe.reports.incidents import IncidentDispatcher, WebhookNotifier

__all__ = [
    "ReportCategory",
    "ReportSeverity",
    "ReportStatus",
    "ReportRecord",
    "IncidentRecord",
    "ReportStats",
    "CATEGORY_SEVERITY",
    "REPORT_TRANSITIONS",
    "severity_for",
    "IncidentDispatcher",
    "WebhookNotifier",
]
