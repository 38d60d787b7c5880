"""Email notifier registry"""

from paywall.core.config import settings
from paywall.core.errors import ConfigurationError
from paywall.services.email.base import BaseNotifier
from paywall.services.email.resend_notifier import ResendNotifier
from paywall.services.email.sendgrid_notifier import SendGridNotifier


def _build_resend() -> ResendNotifier:
    return ResendNotifier(settings.require("RESEND_API_KEY"), settings.require("EMAIL_FROM"))


def _build_sendgrid() -> SendGridNotifier:
    return SendGridNotifier(
        settings.require("SENDGRID_API_KEY"),
        settings.require("EMAIL_FROM"),
        timeout=settings.EMAIL_TIMEOUT
    )


NOTIFIERS = {
    "resend": _build_resend,
    "sendgrid": _build_sendgrid,
}


def create_notifier(name: str = None) -> BaseNotifier:
    """Build the configured email notifier"""
    name = (name or settings.EMAIL_PROVIDER).strip().lower()
    builder = NOTIFIERS.get(name)
    if builder is None:
        raise ConfigurationError(f"Unsupported email provider: {name}")
    return builder()
