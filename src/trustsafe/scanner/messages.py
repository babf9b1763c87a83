"""Localized warnings shown to chat senders, keyed by detection severity."""

from trustsafe.scanner.models import Severity


DEFAULT_LOCALE = "pt"

WARNING_MESSAGES = {
    "pt": {
        Severity.HIGH: (
            "⚠️ AVISO: Partilhar informações de contacto direto é contra as nossas políticas. "
            "Por favor, use apenas o chat do app. Violações podem resultar em suspensão da conta."
        ),
        Severity.MEDIUM: (
            "⚠️ AVISO: Evite solicitar ou partilhar formas de contacto fora do app. "
            "Use as mensagens da plataforma para comunicação segura."
        ),
        Severity.LOW: (
            "ℹ️ NOTA: Recomendamos manter toda a comunicação dentro do app para sua segurança."
        ),
        Severity.NONE: "",
    },
    "en": {
        Severity.HIGH: (
            "⚠️ WARNING: Sharing direct contact details is against our policies. "
            "Please use the in-app chat only. Violations may lead to account suspension."
        ),
        Severity.MEDIUM: (
            "⚠️ WARNING: Avoid asking for or sharing contact methods outside the app. "
            "Use platform messages for safe communication."
        ),
        Severity.LOW: (
            "ℹ️ NOTE: We recommend keeping all communication inside the app for your safety."
        ),
        Severity.NONE: "",
    },
}


def warning_message(severity: Severity, locale: str = DEFAULT_LOCALE) -> str:
    """Get the warning for a severity, falling back to the default locale."""
    messages = WARNING_MESSAGES.get(locale, WARNING_MESSAGES[DEFAULT_LOCALE])
    return messages.get(severity, "")
