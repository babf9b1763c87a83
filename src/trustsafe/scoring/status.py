"""Status Evaluator - derives account standing from current facts.

The state is recomputed from scratch on every run rather than advanced
from the previous state, so a missed event can never leave an account
stuck in the wrong state. Entry side effects are the caller's job and
are guarded by comparing against the stored state.
"""

from typing import List, Tuple

from trustsafe.scoring.models import (
    SafetyStatus,
    ScoreBreakdown,
    StatusDecision,
    StatusInputs,
    SuspensionReason,
)


# Score bands
SAFE_SCORE_MIN = 80.0
WARNING_SCORE_MIN = 60.0
PROBATION_SCORE_MIN = 40.0

# Repeat contact sharing inside the rolling window
CONTACT_VIOLATION_THRESHOLD = 3


Finding = Tuple[SafetyStatus, str, SuspensionReason]


def dominant_reason(breakdown: ScoreBreakdown) -> SuspensionReason:
    """Pick the penalty that contributed most to a low score."""
    penalties = [
        (breakdown.rating_penalty, SuspensionReason.LOW_RATING),
        (breakdown.report_penalty, SuspensionReason.REPORTS),
        (breakdown.cancellation_penalty + breakdown.completion_penalty,
         SuspensionReason.EXCESSIVE_CANCELLATIONS),
    ]
    best_points, best_reason = 0.0, SuspensionReason.LOW_RATING
    for points, reason in penalties:
        if points > best_points:
            best_points, best_reason = points, reason
    return best_reason


class StatusEvaluator:
    """
    Maps score and report history to one of four states.

    Strictest matching rule wins:
    - SUSPENDED: score < 40, a triaged critical report, or repeated
      contact sharing inside the window
    - PROBATION: score < 60, or a triaged high report
    - WARNING: score < 80, or any unresolved report
    - SAFE: otherwise

    Report-driven rules take precedence over a healthy score.
    """

    def __init__(self, contact_violation_threshold: int = CONTACT_VIOLATION_THRESHOLD):
        self.contact_violation_threshold = contact_violation_threshold

    def evaluate(self, inputs: StatusInputs) -> StatusDecision:
        """
        Evaluate the status for the given inputs.

        Args:
            inputs: Current score breakdown, report counts and window counts

        Returns:
            StatusDecision with the derived state and the reasons behind it
        """
        if inputs.suspension_active:
            return StatusDecision(
                status=SafetyStatus.SUSPENDED,
                reasons=["Active suspension awaiting reactivation or expiry"],
            )

        findings = self._collect_findings(inputs)

        if not findings:
            return StatusDecision(status=SafetyStatus.SAFE)

        status = max((f[0] for f in findings), key=lambda s: s.rank)
        chosen = [f for f in findings if f[0] == status]

        return StatusDecision(
            status=status,
            reasons=[f[1] for f in chosen],
            suspension_reason=chosen[0][2],
        )

    def _collect_findings(self, inputs: StatusInputs) -> List[Finding]:
        findings: List[Finding] = []
        score = inputs.score
        score_reason = dominant_reason(inputs.breakdown)

        # After reinstatement, the score alone escalates only once it drops
        # below where the reviewer left it.
        score_can_escalate = (
            inputs.reinstated_score is None or score < inputs.reinstated_score
        )

        # Suspension rules
        if score < PROBATION_SCORE_MIN and score_can_escalate:
            findings.append((
                SafetyStatus.SUSPENDED,
                f"Safety score {score:.1f} below {PROBATION_SCORE_MIN:.0f}",
                score_reason,
            ))
        if inputs.triaged_critical_reports > 0:
            findings.append((
                SafetyStatus.SUSPENDED,
                f"{inputs.triaged_critical_reports} critical report(s) under review",
                SuspensionReason.REPORTS,
            ))
        if inputs.recent_contact_violations >= self.contact_violation_threshold:
            findings.append((
                SafetyStatus.SUSPENDED,
                f"{inputs.recent_contact_violations} contact-sharing violations in window",
                SuspensionReason.CONTACT_SHARING,
            ))

        # Probation rules
        if score < WARNING_SCORE_MIN and score_can_escalate:
            findings.append((
                SafetyStatus.PROBATION,
                f"Safety score {score:.1f} below {WARNING_SCORE_MIN:.0f}",
                score_reason,
            ))
        if inputs.triaged_high_reports > 0:
            findings.append((
                SafetyStatus.PROBATION,
                f"{inputs.triaged_high_reports} high-severity report(s) under review",
                SuspensionReason.REPORTS,
            ))

        # Warning rules
        if score < SAFE_SCORE_MIN:
            findings.append((
                SafetyStatus.WARNING,
                f"Safety score {score:.1f} below {SAFE_SCORE_MIN:.0f}",
                score_reason,
            ))
        if inputs.unresolved_reports > 0:
            findings.append((
                SafetyStatus.WARNING,
                f"{inputs.unresolved_reports} unresolved report(s)",
                SuspensionReason.REPORTS,
            ))

        return findings
