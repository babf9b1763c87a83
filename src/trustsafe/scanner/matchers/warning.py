"""Medium severity matchers.

Messages are delivered, but the sender sees a warning and the hit is
written to the audit ledger for repeat-offender tracking.
"""

from trustsafe.scanner.models import ContactType, Severity
from trustsafe.scanner.matchers import RegexMatcher


class MessagingPlatformMatcher(RegexMatcher):
    """Detect mentions of third-party messaging apps."""

    def __init__(self):
        super().__init__(
            name="messaging_platform",
            contact_type=ContactType.MESSAGING_APP,
            severity=Severity.MEDIUM,
            description="Mentions of WhatsApp, Telegram and similar apps",
            patterns=[
                r"\b(?:whats\s?app|wpp|zap|wa\.me)\b",
                r"\b(?:telegram|telegrm|t\.me)\b",
                r"\b(?:signal|viber|messenger|wechat|kakao(?:talk)?|imessage)\b",
            ],
        )


class ContactRequestMatcher(RegexMatcher):
    """Detect explicit requests to move the conversation off-platform."""

    def __init__(self):
        super().__init__(
            name="contact_request",
            contact_type=ContactType.CONTACT_REQUEST,
            severity=Severity.MEDIUM,
            description="Requests to exchange contact details",
            patterns=[
                # English
                r"\b(?:call|text|phone|ring|email|e-mail|dm|message|whatsapp)\s+me\b",
                r"\bmy\s+(?:phone|number|cell|mobile|email|e-mail|contact|whatsapp)\b",
                r"\b(?:contact|reach)\s+me\s+(?:at|on|via|through)\b",
                r"\b(?:outside|off)\s+(?:of\s+)?(?:the\s+)?(?:app|platform)\b",
                # Portuguese
                r"\b(?:meu|minha)\s+(?:n[uú]mero|telefone|telem[oó]vel|contacto|contato|whats|email|e-mail)\b",
                r"\b(?:liga|ligar|chama|contacta|contata)[\s-]?me\b",
                r"\bme\s+(?:liga|ligue|chama|contacta|contata)\b",
                r"\b(?:envia|enviar|manda|mandar)\s+(?:mensagem|msg|sms|direct|dm)\b",
                r"\bfora\s+d[ao]\s+(?:plataforma|app|aplicativo|aplica[cç][aã]o)\b",
            ],
        )


WARNING_MATCHERS = [
    MessagingPlatformMatcher(),
    ContactRequestMatcher(),
]
