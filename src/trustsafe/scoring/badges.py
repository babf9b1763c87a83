"""Badge Evaluator - reputation badges from aggregate metrics."""

from typing import Iterable, Set

from trustsafe.scoring.models import BadgeInputs, BadgeType


# Badge thresholds
TOP_RATED_MIN_RATING = 4.8
TOP_RATED_MIN_REVIEWS = 50
RELIABLE_MIN_COMPLETION = 0.95
RELIABLE_MIN_BOOKINGS = 20
RESPONSIVE_MIN_RATE = 0.90
RESPONSIVE_MIN_BOOKINGS = 10
PROFESSIONAL_MIN_BOOKINGS = 100
EXPERT_MIN_RATING = 4.8
EXPERT_MIN_REVIEWS = 30
EXPERT_MIN_ACCOUNT_AGE_DAYS = 90


class BadgeEvaluator:
    """
    Evaluates badge eligibility.

    Badges are independent of the suspension lifecycle. Evaluation only
    reports what is earned now; callers append `new_badges` and never
    remove what was awarded before.
    """

    def evaluate(self, inputs: BadgeInputs) -> Set[BadgeType]:
        """Return every badge the inputs currently qualify for."""
        earned: Set[BadgeType] = set()

        if inputs.is_verified:
            earned.add(BadgeType.VERIFIED)

        if (inputs.rating_avg >= TOP_RATED_MIN_RATING
                and inputs.rating_count >= TOP_RATED_MIN_REVIEWS):
            earned.add(BadgeType.TOP_RATED)

        if (inputs.completion_rate >= RELIABLE_MIN_COMPLETION
                and inputs.total_bookings >= RELIABLE_MIN_BOOKINGS):
            earned.add(BadgeType.RELIABLE)

        if (inputs.response_rate >= RESPONSIVE_MIN_RATE
                and inputs.total_bookings >= RESPONSIVE_MIN_BOOKINGS):
            earned.add(BadgeType.RESPONSIVE)

        if (inputs.behavior_reports == 0
                and inputs.total_bookings >= PROFESSIONAL_MIN_BOOKINGS):
            earned.add(BadgeType.PROFESSIONAL)

        if (inputs.role == "supplier"
                and inputs.rating_avg >= EXPERT_MIN_RATING
                and inputs.rating_count >= EXPERT_MIN_REVIEWS
                and inputs.account_age_days >= EXPERT_MIN_ACCOUNT_AGE_DAYS):
            earned.add(BadgeType.EXPERT)

        return earned

    @staticmethod
    def new_badges(already_awarded: Iterable[BadgeType], earned: Set[BadgeType]) -> Set[BadgeType]:
        """Badges to append. Never returns removals."""
        return set(earned) - set(already_awarded)
