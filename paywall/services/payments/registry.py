"""Payment provider registry"""

from paywall.core.config import settings
from paywall.core.errors import ConfigurationError
from paywall.services.payments.base import BasePaymentProvider
from paywall.services.payments.stripe_provider import StripePaymentProvider


def _build_stripe() -> StripePaymentProvider:
    return StripePaymentProvider(api_key=settings.require("STRIPE_SECRET_KEY"))


PAYMENT_PROVIDERS = {
    "stripe": _build_stripe,
}


def create_payment_provider(name: str = None) -> BasePaymentProvider:
    """Build the configured payment provider"""
    name = (name or settings.PAYMENT_PROVIDER).strip().lower()
    builder = PAYMENT_PROVIDERS.get(name)
    if builder is None:
        raise ConfigurationError(f"Unsupported payment provider: {name}")
    return builder()
