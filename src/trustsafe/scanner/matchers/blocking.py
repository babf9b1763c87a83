"""High severity matchers.

A hit from any of these blocks message delivery and records a
contact-sharing violation against the sender.
"""

from trustsafe.scanner.models import ContactType, Severity
from trustsafe.scanner.matchers import RegexMatcher


# Shortest digit run treated as a phone number (Angolan mobiles have 9)
MIN_PHONE_DIGITS = 9


class PhoneNumberMatcher(RegexMatcher):
    """Detect phone numbers in local and international formats."""

    def __init__(self):
        super().__init__(
            name="phone_number",
            contact_type=ContactType.PHONE,
            severity=Severity.HIGH,
            description=f"Phone numbers with at least {MIN_PHONE_DIGITS} digits",
            patterns=[
                # Angolan mobile: +244 923 456 789, 244-923-456-789, 923456789
                r"(?:\+?244[\s.-]?)?9\d{2}[\s.-]?\d{3}[\s.-]?\d{3}",
                # International with explicit country code: +1 (234) 567-8900
                r"\+\d{1,4}[\s.-]?\(?\d{1,4}\)?(?:[\s.-]?\d{2,4}){2,4}",
                # Grouped: (123) 456-7890, 123.456.789
                r"\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{3,4}",
                # Spaced out: 9 2 3 4 5 6 7 8 9
                r"(?:\d\s){8,}\d",
                # Plain run of digits
                r"\d{9,}",
            ],
        )

    def accept(self, candidate: str) -> bool:
        digits = sum(ch.isdigit() for ch in candidate)
        return digits >= MIN_PHONE_DIGITS


class EmailAddressMatcher(RegexMatcher):
    """Detect email addresses."""

    def __init__(self):
        super().__init__(
            name="email_address",
            contact_type=ContactType.EMAIL,
            severity=Severity.HIGH,
            description="Email addresses",
            patterns=[
                r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
            ],
        )


BLOCKING_MATCHERS = [
    PhoneNumberMatcher(),
    EmailAddressMatcher(),
]
