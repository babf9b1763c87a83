"""Tests for the Status Evaluator."""

from trustsafe.scoring import (
    SafetyStatus,
    ScoreBreakdown,
    ScoreCalculator,
    StatusEvaluator,
    StatusInputs,
    SuspensionReason,
)


def inputs_for(score: float, **kwargs) -> StatusInputs:
    """Status inputs whose score comes entirely from the rating penalty."""
    breakdown = ScoreBreakdown(rating_penalty=100.0 - score, score=score)
    return StatusInputs(breakdown=breakdown, **kwargs)


class TestScoreBands:

    def setup_method(self):
        self.evaluator = StatusEvaluator()

    def test_safe(self):
        decision = self.evaluator.evaluate(inputs_for(100.0))
        assert decision.status == SafetyStatus.SAFE
        assert decision.suspension_reason is None
        assert decision.reasons == []

    def test_band_boundaries(self):
        assert self.evaluator.evaluate(inputs_for(80.0)).status == SafetyStatus.SAFE
        assert self.evaluator.evaluate(inputs_for(79.9)).status == SafetyStatus.WARNING
        assert self.evaluator.evaluate(inputs_for(60.0)).status == SafetyStatus.WARNING
        assert self.evaluator.evaluate(inputs_for(59.9)).status == SafetyStatus.PROBATION
        assert self.evaluator.evaluate(inputs_for(40.0)).status == SafetyStatus.PROBATION
        assert self.evaluator.evaluate(inputs_for(39.9)).status == SafetyStatus.SUSPENDED

    def test_probation_profile(self):
        breakdown = ScoreCalculator().breakdown(3.0, 20, 0, 0, 0.35, 0.65)
        decision = self.evaluator.evaluate(StatusInputs(breakdown=breakdown))

        assert decision.status == SafetyStatus.PROBATION
        # Cancellation + completion (30) outweigh the rating penalty (12)
        assert decision.suspension_reason == SuspensionReason.EXCESSIVE_CANCELLATIONS

    def test_low_rating_reason(self):
        decision = self.evaluator.evaluate(inputs_for(30.0))
        assert decision.status == SafetyStatus.SUSPENDED
        assert decision.suspension_reason == SuspensionReason.LOW_RATING


class TestReportOverrides:
    """Report-driven rules win over a healthy score."""

    def setup_method(self):
        self.evaluator = StatusEvaluator()

    def test_unresolved_report_forces_warning(self):
        decision = self.evaluator.evaluate(inputs_for(80.0, unresolved_reports=1))
        assert decision.status == SafetyStatus.WARNING
        assert decision.suspension_reason == SuspensionReason.REPORTS

    def test_triaged_high_report_forces_probation(self):
        decision = self.evaluator.evaluate(
            inputs_for(90.0, unresolved_reports=1, triaged_high_reports=1)
        )
        assert decision.status == SafetyStatus.PROBATION

    def test_triaged_critical_report_forces_suspension(self):
        decision = self.evaluator.evaluate(
            inputs_for(80.0, unresolved_reports=1, triaged_critical_reports=1)
        )
        assert decision.status == SafetyStatus.SUSPENDED
        assert decision.suspension_reason == SuspensionReason.REPORTS

    def test_strictest_rule_wins(self):
        decision = self.evaluator.evaluate(
            inputs_for(55.0, unresolved_reports=2, triaged_critical_reports=1)
        )
        assert decision.status == SafetyStatus.SUSPENDED
        assert len(decision.reasons) == 1


class TestContactSharing:

    def test_threshold(self):
        evaluator = StatusEvaluator()
        assert evaluator.evaluate(inputs_for(100.0, recent_contact_violations=2)).status == SafetyStatus.SAFE

        decision = evaluator.evaluate(inputs_for(100.0, recent_contact_violations=3))
        assert decision.status == SafetyStatus.SUSPENDED
        assert decision.suspension_reason == SuspensionReason.CONTACT_SHARING

    def test_custom_threshold(self):
        evaluator = StatusEvaluator(contact_violation_threshold=5)
        assert evaluator.evaluate(inputs_for(100.0, recent_contact_violations=4)).status == SafetyStatus.SAFE


class TestPinnedAndReinstated:

    def setup_method(self):
        self.evaluator = StatusEvaluator()

    def test_active_suspension_pins_state(self):
        decision = self.evaluator.evaluate(inputs_for(100.0, suspension_active=True))
        assert decision.status == SafetyStatus.SUSPENDED

    def test_reinstated_score_holds_back_score_escalation(self):
        decision = self.evaluator.evaluate(inputs_for(35.0, reinstated_score=35.0))
        assert decision.status == SafetyStatus.WARNING

    def test_score_drop_after_reinstatement_escalates(self):
        decision = self.evaluator.evaluate(inputs_for(34.0, reinstated_score=35.0))
        assert decision.status == SafetyStatus.SUSPENDED

    def test_reinstatement_does_not_mask_reports(self):
        decision = self.evaluator.evaluate(
            inputs_for(50.0, reinstated_score=50.0, triaged_high_reports=1)
        )
        assert decision.status == SafetyStatus.PROBATION
