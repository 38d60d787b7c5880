"""Access service - resend and checkout flows used by the paywall API"""
import logging
from typing import Dict, Optional
from urllib.parse import urlencode

from paywall.core.config import settings
from paywall.core.logging import mask_email
from paywall.core.metrics import resend_requests_counter
from paywall.db.payment_store import PaymentRecordStore
from paywall.db.redis import increment_rate_limit
from paywall.schemas.access import AccessToken, normalize_email
from paywall.services.access_gate import AccessGate
from paywall.services.email.base import BaseNotifier
from paywall.services.email_service import build_article_url, send_magic_link_email
from paywall.services.payments.base import BasePaymentProvider, CheckoutSession
from paywall.services.token_service import TokenService

logger = logging.getLogger(__name__)

# Identical for every outcome so the response never reveals who purchased
RESEND_RESPONSE = {
    "success": True,
    "message": "If a payment record exists for this email, an access link has been sent.",
}


def resend_magic_link(
    email: str,
    article_slug: str,
    gate: AccessGate,
    notifier: BaseNotifier,
    redis_client
) -> Dict:
    """Reissue and email an access link if (email, article_slug) was paid for.

    Always returns RESEND_RESPONSE. Over the per-email rate limit nothing is
    issued or sent.
    """
    count = increment_rate_limit(
        redis_client, f"resend:{email}", settings.RESEND_RATE_LIMIT_WINDOW
    )
    if count > settings.RESEND_RATE_LIMIT_REQUESTS:
        resend_requests_counter.labels(outcome="rate_limited").inc()
        logger.warning(f"Resend rate limit exceeded for {mask_email(email)}")
        return dict(RESEND_RESPONSE)

    result = gate.check(article_slug, token_id=None, email=email)
    if result.token is None:
        resend_requests_counter.labels(outcome="not_eligible").inc()
        logger.info(f"Resend requested for {article_slug} by {mask_email(email)}: no payment record")
        return dict(RESEND_RESPONSE)

    sent = send_magic_link_email(notifier, result.token)
    resend_requests_counter.labels(outcome="sent" if sent else "delivery_failed").inc()
    return dict(RESEND_RESPONSE)


def create_article_checkout(
    provider: BasePaymentProvider,
    price_id: str,
    article_slug: str,
    customer_email: Optional[str] = None
) -> CheckoutSession:
    """Start a one-time checkout whose metadata lets the webhook recover the article"""
    article_url = build_article_url(article_slug)
    success_url = f"{article_url}?{urlencode({'purchase': 'success'})}"
    metadata = {"articleSlug": article_slug}
    if customer_email:
        metadata["email"] = customer_email

    session = provider.create_checkout_session(
        price_id=price_id,
        success_url=success_url,
        cancel_url=article_url,
        metadata=metadata,
        customer_email=customer_email,
    )
    logger.info(f"Created checkout session {session.id} for {article_slug}")
    return session


def grant_manual_access(
    email: str,
    article_slug: str,
    reference: str,
    payments: PaymentRecordStore,
    tokens: TokenService,
    notifier: Optional[BaseNotifier] = None
) -> AccessToken:
    """Record an out-of-band payment and issue a token (support tooling).

    ``reference`` becomes the payment id, so repeating the same grant does not
    add a second payment record.
    """
    email = normalize_email(email)
    payments.put(email, article_slug, f"manual:{reference}")
    token = tokens.issue(article_slug, email, reason="manual")
    if notifier is not None:
        send_magic_link_email(notifier, token)
    return token
