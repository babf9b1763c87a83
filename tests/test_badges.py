"""Tests for the Badge Evaluator."""

from trustsafe.scoring import BadgeEvaluator, BadgeInputs, BadgeType


class TestBadgeEligibility:

    def setup_method(self):
        self.evaluator = BadgeEvaluator()

    def test_new_account_has_no_badges(self):
        assert self.evaluator.evaluate(BadgeInputs()) == set()

    def test_verified(self):
        assert self.evaluator.evaluate(BadgeInputs(is_verified=True)) == {BadgeType.VERIFIED}

    def test_top_rated(self):
        earned = self.evaluator.evaluate(BadgeInputs(rating_avg=4.8, rating_count=50))
        assert BadgeType.TOP_RATED in earned

        earned = self.evaluator.evaluate(BadgeInputs(rating_avg=4.8, rating_count=49))
        assert BadgeType.TOP_RATED not in earned

    def test_reliable(self):
        earned = self.evaluator.evaluate(BadgeInputs(completion_rate=0.95, total_bookings=20))
        assert BadgeType.RELIABLE in earned

        earned = self.evaluator.evaluate(BadgeInputs(completion_rate=0.94, total_bookings=200))
        assert BadgeType.RELIABLE not in earned

    def test_responsive(self):
        earned = self.evaluator.evaluate(BadgeInputs(response_rate=0.90, total_bookings=10))
        assert BadgeType.RESPONSIVE in earned

        earned = self.evaluator.evaluate(BadgeInputs(response_rate=0.95, total_bookings=9))
        assert BadgeType.RESPONSIVE not in earned

    def test_professional(self):
        earned = self.evaluator.evaluate(BadgeInputs(total_bookings=100))
        assert BadgeType.PROFESSIONAL in earned

        earned = self.evaluator.evaluate(BadgeInputs(total_bookings=100, behavior_reports=1))
        assert BadgeType.PROFESSIONAL not in earned

    def test_expert_is_supplier_only(self):
        profile = dict(rating_avg=4.9, rating_count=30, account_age_days=90)

        assert BadgeType.EXPERT in self.evaluator.evaluate(BadgeInputs(role="supplier", **profile))
        assert BadgeType.EXPERT not in self.evaluator.evaluate(BadgeInputs(role="client", **profile))

    def test_expert_needs_established_account(self):
        earned = self.evaluator.evaluate(
            BadgeInputs(role="supplier", rating_avg=5.0, rating_count=40, account_age_days=30)
        )
        assert BadgeType.EXPERT not in earned


class TestAppendOnly:

    def test_new_badges_never_removes(self):
        already = {BadgeType.VERIFIED, BadgeType.TOP_RATED}
        earned = {BadgeType.VERIFIED, BadgeType.RELIABLE}

        assert BadgeEvaluator.new_badges(already, earned) == {BadgeType.RELIABLE}

    def test_nothing_new(self):
        assert BadgeEvaluator.new_badges([BadgeType.VERIFIED], {BadgeType.VERIFIED}) == set()
