"""Low severity matchers. Informational only, never recorded as violations."""

from trustsafe.scanner.models import ContactType, Severity
from trustsafe.scanner.matchers import RegexMatcher


class SocialHandleMatcher(RegexMatcher):
    """Detect social network mentions and @handles."""

    def __init__(self):
        super().__init__(
            name="social_handle",
            contact_type=ContactType.SOCIAL_MEDIA,
            severity=Severity.LOW,
            description="Social network names and @handles",
            patterns=[
                r"\b(?:instagram|insta|facebook|fb|tiktok|snapchat|twitter|linkedin)\b",
                # @handle, but not the domain half of an email address
                r"(?<![\w.])@[A-Za-z0-9_.]{3,}",
            ],
        )


class BareUrlMatcher(RegexMatcher):
    """Detect links that are not emails."""

    def __init__(self):
        super().__init__(
            name="bare_url",
            contact_type=ContactType.URL,
            severity=Severity.LOW,
            description="Links to external sites",
            patterns=[
                r"\b(?:https?://|www\.)\S+",
                r"(?<![@\w.])[a-z0-9-]+(?:\.[a-z0-9-]+)*\."
                r"(?:com|net|org|io|co|ao|pt|br|me|app|info|biz|link|ly)\b(?:/\S*)?",
            ],
        )


INFORMATIONAL_MATCHERS = [
    SocialHandleMatcher(),
    BareUrlMatcher(),
]
