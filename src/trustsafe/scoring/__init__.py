"""Scoring module: safety score, account status and badges."""

from trustsafe.scoring.models import (
    SafetyStatus,
    SuspensionReason,
    BadgeType,
    ScoreInputs,
    ScoreBreakdown,
    StatusInputs,
    StatusDecision,
    BadgeInputs,
)
from trustsafe.scoring.calculator import ScoreCalculator
from trustsafe.scoring.status import StatusEvaluator
from trustsafe.scoring.badges import BadgeEvaluator

__all__ = [
    "SafetyStatus",
    "SuspensionReason",
    "BadgeType",
    "ScoreInputs",
    "ScoreBreakdown",
    "StatusInputs",
    "StatusDecision",
    "BadgeInputs",
    "ScoreCalculator",
    "StatusEvaluator",
    "BadgeEvaluator",
]
