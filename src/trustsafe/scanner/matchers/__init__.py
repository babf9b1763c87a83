"""Base classes for contact matchers."""

import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Pattern

from trustsafe.errors import DegradedDetectionError
from trustsafe.scanner.models import ContactType, Detection, Severity


class Matcher(ABC):
    """Abstract base class for contact matchers."""

    def __init__(
        self,
        name: str,
        contact_type: ContactType,
        severity: Severity,
        description: str,
    ):
        """
        Initialize a matcher.

        Args:
            name: Unique matcher identifier
            contact_type: What a hit means
            severity: Severity reported on a hit
            description: Human-readable description
        """
        self.name = name
        self.contact_type = contact_type
        self.severity = severity
        self.description = description

    @abstractmethod
    def match(self, text: str) -> Optional[Detection]:
        """
        Look for this matcher's pattern in text.

        Returns:
            Detection for the first hit, or None

        Raises:
            DegradedDetectionError: If the input cannot be processed
        """
        pass

    def create_detection(self, matched_text: str) -> Detection:
        """Create a detection for this matcher."""
        return Detection(
            matcher=self.name,
            contact_type=self.contact_type,
            severity=self.severity,
            matched_text=matched_text.strip(),
        )


class RegexMatcher(Matcher):
    """Matcher backed by an ordered list of regular expressions."""

    def __init__(
        self,
        name: str,
        contact_type: ContactType,
        severity: Severity,
        description: str,
        patterns: Iterable[str],
        flags: int = re.IGNORECASE,
    ):
        super().__init__(name, contact_type, severity, description)
        self.patterns: List[Pattern[str]] = [re.compile(p, flags) for p in patterns]

    def accept(self, candidate: str) -> bool:
        """Hook for matchers that need to post-filter regex hits."""
        return True

    def match(self, text: str) -> Optional[Detection]:
        if not isinstance(text, str):
            raise DegradedDetectionError(
                f"{self.name}: expected text, got {type(text).__name__}"
            )

        try:
            for pattern in self.patterns:
                for found in pattern.finditer(text):
                    candidate = found.group(0)
                    if self.accept(candidate):
                        return self.create_detection(candidate)
        except (re.error, RecursionError, MemoryError) as e:
            raise DegradedDetectionError(f"{self.name}: {e}") from e

        return None
