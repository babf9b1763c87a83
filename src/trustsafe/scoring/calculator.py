"""Safety score calculator.

Pure, deterministic 0-100 score built from four capped penalties.
Each penalty is capped on its own before the penalties are summed.
"""

import math
from typing import Optional

from trustsafe.scoring.models import ScoreBreakdown, ScoreInputs


BASE_SCORE = 100.0

# Rating: -6 points per star below 5, only once there are enough reviews
RATING_MIN_REVIEWS = 5
RATING_POINTS_PER_STAR = 6.0
RATING_PENALTY_CAP = 30.0

# Reports: -20 per critical, -10 per high
CRITICAL_REPORT_POINTS = 20.0
HIGH_REPORT_POINTS = 10.0
REPORT_PENALTY_CAP = 40.0

# Cancellations above 10%
CANCELLATION_ALLOWANCE = 0.10
CANCELLATION_PENALTY_CAP = 15.0

# Completion below 90%
COMPLETION_TARGET = 0.90
COMPLETION_PENALTY_CAP = 15.0

# Penalties are rounded before summing so float noise never changes a result
PRECISION = 6


def _clamp(value: Optional[float], low: float, high: float, neutral: float) -> float:
    """Clamp into [low, high]; missing or NaN values become the neutral value."""
    if value is None:
        return neutral
    value = float(value)
    if math.isnan(value):
        return neutral
    return max(low, min(high, value))


def _count(value: Optional[int]) -> int:
    if value is None:
        return 0
    return max(0, int(value))


class ScoreCalculator:
    """
    Safety Score Calculator.

    Algorithm (order matters):
    1. Start at 100
    2. Rating penalty (>= 5 reviews and avg < 5): 6 x (5 - avg), cap 30
    3. Report penalty: 20 x critical + 10 x high, cap 40
    4. Cancellation penalty (rate > 10%): 100 x (rate - 0.10), cap 15
    5. Completion penalty (rate < 90%): 100 x (0.90 - rate), cap 15
    6. Clamp to [0, 100]

    Out-of-range inputs are clamped, never rejected.
    """

    def breakdown(
        self,
        rating_avg: float,
        rating_count: int,
        critical_reports: int,
        high_reports: int,
        cancellation_rate: float,
        completion_rate: float,
    ) -> ScoreBreakdown:
        """Compute the score together with each capped penalty."""
        rating_avg = _clamp(rating_avg, 0.0, 5.0, neutral=5.0)
        rating_count = _count(rating_count)
        critical_reports = _count(critical_reports)
        high_reports = _count(high_reports)
        cancellation_rate = _clamp(cancellation_rate, 0.0, 1.0, neutral=0.0)
        completion_rate = _clamp(completion_rate, 0.0, 1.0, neutral=1.0)

        rating_penalty = 0.0
        if rating_count >= RATING_MIN_REVIEWS and rating_avg < 5.0:
            rating_penalty = min(RATING_POINTS_PER_STAR * (5.0 - rating_avg), RATING_PENALTY_CAP)

        report_penalty = min(
            CRITICAL_REPORT_POINTS * critical_reports + HIGH_REPORT_POINTS * high_reports,
            REPORT_PENALTY_CAP,
        )

        cancellation_penalty = 0.0
        if cancellation_rate > CANCELLATION_ALLOWANCE:
            cancellation_penalty = min(
                100.0 * (cancellation_rate - CANCELLATION_ALLOWANCE),
                CANCELLATION_PENALTY_CAP,
            )

        completion_penalty = 0.0
        if completion_rate < COMPLETION_TARGET:
            completion_penalty = min(
                100.0 * (COMPLETION_TARGET - completion_rate),
                COMPLETION_PENALTY_CAP,
            )

        rating_penalty = round(rating_penalty, PRECISION)
        report_penalty = round(report_penalty, PRECISION)
        cancellation_penalty = round(cancellation_penalty, PRECISION)
        completion_penalty = round(completion_penalty, PRECISION)

        score = BASE_SCORE
        score -= rating_penalty
        score -= report_penalty
        score -= cancellation_penalty
        score -= completion_penalty
        score = round(max(0.0, min(100.0, score)), PRECISION)

        return ScoreBreakdown(
            rating_penalty=rating_penalty,
            report_penalty=report_penalty,
            cancellation_penalty=cancellation_penalty,
            completion_penalty=completion_penalty,
            score=score,
        )

    def compute(
        self,
        rating_avg: float,
        rating_count: int,
        critical_reports: int,
        high_reports: int,
        cancellation_rate: float,
        completion_rate: float,
    ) -> float:
        """Compute the safety score in [0, 100]."""
        return self.breakdown(
            rating_avg,
            rating_count,
            critical_reports,
            high_reports,
            cancellation_rate,
            completion_rate,
        ).score

    def breakdown_for(self, inputs: ScoreInputs) -> ScoreBreakdown:
        """Compute a breakdown from a ScoreInputs model."""
        return self.breakdown(
            inputs.rating_avg,
            inputs.rating_count,
            inputs.critical_reports,
            inputs.high_reports,
            inputs.cancellation_rate,
            inputs.completion_rate,
        )
