"""Stripe payment provider"""
import logging
from typing import Any, Dict, Optional

import stripe

from paywall.core.errors import AuthenticityError, PaymentMetadataError, ValidationError
from paywall.schemas.access import normalize_email
from paywall.services.payments.base import BasePaymentProvider, CheckoutSession, PaymentData

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def _get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    # Try attribute access first (Stripe objects)
    if not isinstance(obj, dict) and hasattr(obj, key):
        value = getattr(obj, key, default)
        if value is not None:
            return value
    if isinstance(obj, dict) or hasattr(obj, "get"):
        try:
            value = obj.get(key, default)
        except (AttributeError, TypeError):
            return default
        return default if value is None else value
    return default


class StripePaymentProvider(BasePaymentProvider):
    """Stripe Checkout (one-time payment mode) and signed webhooks"""

    name = "stripe"

    def __init__(self, api_key: str, tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE):
        # Passed per request; the module-level stripe.api_key is never set
        self._api_key = api_key
        self._tolerance = tolerance

    def verify_webhook(self, payload: bytes, signature: str, secret: str) -> bool:
        if not signature or not secret:
            return False
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        try:
            stripe.WebhookSignature.verify_header(payload, signature, secret, self._tolerance)
            return True
        except stripe.SignatureVerificationError:
            return False

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Any:
        if not signature:
            raise AuthenticityError("Missing signature")
        try:
            return stripe.Webhook.construct_event(
                payload, signature, secret, tolerance=self._tolerance, api_key=self._api_key
            )
        except stripe.SignatureVerificationError as e:
            raise AuthenticityError("Invalid signature") from e
        except ValueError as e:
            # Signature verified but the body is not a JSON event
            raise ValidationError("Invalid payload") from e

    def event_type(self, event: Any) -> str:
        return _get_stripe_value(event, "type", "")

    def extract_payment(self, event: Any) -> Optional[PaymentData]:
        event_type = self.event_type(event)
        if event_type != CHECKOUT_COMPLETED:
            return None

        session = _get_stripe_value(_get_stripe_value(event, "data"), "object")
        if session is None:
            return None
        if _get_stripe_value(session, "payment_status") != "paid":
            return None

        payment_id = _get_stripe_value(session, "id")
        if not payment_id:
            raise PaymentMetadataError("Paid checkout session has no id")

        metadata = _get_stripe_value(session, "metadata", {}) or {}
        customer_details = _get_stripe_value(session, "customer_details")
        email = (
            _get_stripe_value(customer_details, "email")
            or _get_stripe_value(session, "customer_email")
            or _get_stripe_value(metadata, "email")
        )
        article_slug = _get_stripe_value(metadata, "articleSlug") or _get_stripe_value(metadata, "article_slug")

        if not email:
            raise PaymentMetadataError(f"Paid checkout session {payment_id} has no customer email", payment_id)
        if not article_slug:
            raise PaymentMetadataError(f"Paid checkout session {payment_id} has no articleSlug metadata", payment_id)

        return PaymentData(
            email=normalize_email(email),
            article_slug=article_slug,
            payment_id=payment_id,
            event_type=event_type,
        )

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None
    ) -> CheckoutSession:
        checkout_params = {
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_email:
            checkout_params["customer_email"] = customer_email

        session = stripe.checkout.Session.create(api_key=self._api_key, **checkout_params)
        return CheckoutSession(id=session.id, url=session.url or "")
