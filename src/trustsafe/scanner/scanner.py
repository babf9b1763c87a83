"""Contact Scanner - deterministic off-platform contact detection.

The scanner runs an ordered list of independent matchers over a message
and reports the strongest hit. It has no state and performs no I/O.
"""

import logging
from typing import Iterable, List, Optional

from trustsafe.errors import DegradedDetectionError
from trustsafe.scanner.models import Detection, DetectionResult
from trustsafe.scanner.matchers import Matcher
from trustsafe.scanner.matchers.blocking import BLOCKING_MATCHERS
from trustsafe.scanner.matchers.warning import WARNING_MATCHERS
from trustsafe.scanner.matchers.informational import INFORMATIONAL_MATCHERS


logger = logging.getLogger(__name__)


def default_matchers() -> List[Matcher]:
    """Matchers in priority order (blocking first)."""
    matchers: List[Matcher] = []
    matchers.extend(BLOCKING_MATCHERS)
    matchers.extend(WARNING_MATCHERS)
    matchers.extend(INFORMATIONAL_MATCHERS)
    return matchers


class ContactScanner:
    """
    Stateless classifier for contact sharing in chat text.

    Severity policy:
    - HIGH: phone numbers, emails. Caller must block and record a violation.
    - MEDIUM: messaging apps, contact requests. Deliver with a warning.
    - LOW: social handles, bare links. Informational.

    Overlapping hits resolve to the highest severity; among equal
    severities the earlier matcher wins.
    """

    def __init__(self, matchers: Optional[Iterable[Matcher]] = None):
        self.matchers: List[Matcher] = (
            list(matchers) if matchers is not None else default_matchers()
        )
        logger.info(f"Contact Scanner initialized with {len(self.matchers)} matchers")

    def analyze(self, text: str) -> DetectionResult:
        """
        Scan a message.

        Args:
            text: Raw message text

        Returns:
            DetectionResult (severity NONE for empty or whitespace input)
        """
        if text is None or (isinstance(text, str) and not text.strip()):
            return DetectionResult()

        detections: List[Detection] = []
        degraded = False

        for matcher in self.matchers:
            try:
                detection = matcher.match(text)
            except DegradedDetectionError as e:
                degraded = True
                logger.warning(f"Matcher '{matcher.name}' degraded, skipping: {e.message}")
                continue

            if detection is not None:
                detections.append(detection)

        strongest: Optional[Detection] = None
        for detection in detections:
            if strongest is None or detection.severity.rank > strongest.severity.rank:
                strongest = detection

        if strongest is None:
            return DetectionResult(degraded=degraded)

        return DetectionResult(
            category=strongest.contact_type,
            severity=strongest.severity,
            matched_text=strongest.matched_text,
            detections=detections,
            degraded=degraded,
        )
