"""Paywall API routes"""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from paywall.api.dependencies import (
    get_access_gate, get_notifier, get_payment_provider, get_token_service
)
from paywall.core.errors import (
    AuthenticityError, CheckoutError, NotFoundOrExpired, PaymentMetadataError, PaywallError,
    TransientStoreError, ValidationError, WebhookProcessingError
)
from paywall.core.security import set_access_cookie
from paywall.db.redis import get_redis
from paywall.db.session import get_db
from paywall.schemas.access import (
    CheckoutRequest, ResendLinkRequest, VerifyLinkRequest, is_valid_article_slug
)
from paywall.services.access_gate import AccessGate
from paywall.services.access_service import create_article_checkout, resend_magic_link
from paywall.services.email.base import BaseNotifier
from paywall.services.email_service import build_article_url
from paywall.services.payments.base import BasePaymentProvider
from paywall.services.token_service import TokenService
from paywall.services.webhook_service import PaymentWebhookProcessor

router = APIRouter(prefix="/api/paywall", tags=["paywall"])
logger = logging.getLogger(__name__)


def _require_slug(article_slug: str) -> str:
    if not is_valid_article_slug(article_slug):
        raise ValidationError("Invalid article slug")
    return article_slug


@router.get("/check-access")
def check_access(
    request: Request,
    response: Response,
    article_slug: str = Query(..., alias="articleSlug"),
    gate: AccessGate = Depends(get_access_gate)
):
    """Decide access for the article from its cookie, renewing an expired token silently"""
    _require_slug(article_slug)
    token_id = request.cookies.get(article_slug)

    try:
        result = gate.check(article_slug, token_id=token_id)
    except TransientStoreError as e:
        # Fail closed, but never report an outage as "no access"
        logger.error(f"Access check for {article_slug} failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"hasAccess": False, "error": e.public_message}
        )

    if result.token_renewed:
        set_access_cookie(response, result.token)
    return {"hasAccess": result.has_access, "tokenRenewed": result.token_renewed}


@router.get("/magic-link")
def open_magic_link(
    article_slug: str = Query(..., alias="articleSlug"),
    token: str = Query(...),
    gate: AccessGate = Depends(get_access_gate)
):
    """Landing endpoint for emailed links: set the access cookie and go to the article"""
    _require_slug(article_slug)
    article_url = build_article_url(article_slug)

    result = gate.check(article_slug, token_id=token)
    if not result.has_access:
        return RedirectResponse(f"{article_url}?{urlencode({'access': 'denied'})}", status_code=303)

    redirect = RedirectResponse(article_url, status_code=303)
    set_access_cookie(redirect, result.token)
    return redirect


@router.post("/verify-magic-link")
def verify_magic_link(
    request_data: VerifyLinkRequest,
    response: Response,
    gate: AccessGate = Depends(get_access_gate)
):
    """JSON variant of the magic link landing, for pages that verify links client-side"""
    result = gate.check(request_data.article_slug, token_id=request_data.token)
    if not result.has_access:
        # Same answer for unknown, expired and foreign tokens
        raise NotFoundOrExpired()

    set_access_cookie(response, result.token)
    return {
        "success": True,
        "articleSlug": result.token.article_slug,
        "expiresAt": result.token.expires_at.isoformat(),
    }


@router.post("/resend-magic-link")
def resend_link(
    request_data: ResendLinkRequest,
    gate: AccessGate = Depends(get_access_gate),
    notifier: BaseNotifier = Depends(get_notifier),
    redis_client=Depends(get_redis)
):
    """Email a fresh access link if this email bought the article; same reply either way"""
    return resend_magic_link(
        request_data.email,
        request_data.article_slug,
        gate,
        notifier,
        redis_client
    )


@router.post("/create-checkout-session")
def create_checkout_session(
    checkout_request: CheckoutRequest,
    provider: BasePaymentProvider = Depends(get_payment_provider)
):
    """Create a hosted checkout for one article"""
    try:
        session = create_article_checkout(
            provider,
            checkout_request.price_id,
            checkout_request.article_slug,
            customer_email=checkout_request.email
        )
    except PaywallError:
        raise
    except Exception as e:
        logger.error(f"Error creating checkout session for {checkout_request.article_slug}: {e}", exc_info=True)
        raise CheckoutError(str(e)) from e

    return JSONResponse(
        content={"checkoutUrl": session.url, "sessionId": session.id},
        headers={"Location": session.url}
    )


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    provider: BasePaymentProvider = Depends(get_payment_provider),
    tokens: TokenService = Depends(get_token_service),
    notifier: BaseNotifier = Depends(get_notifier),
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Handle payment provider webhook events

    Note: the body is read as raw bytes; signature verification needs it untouched.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise AuthenticityError("Missing stripe-signature header")

    processor = PaymentWebhookProcessor(provider, tokens, db, notifier, redis_client)
    try:
        return processor.process(payload, sig_header)
    except PaymentMetadataError as e:
        # Retrying cannot fix missing metadata; acknowledge and leave it to the logs
        return {"status": "error_logged", "error": str(e)}
    except PaywallError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error processing webhook (state={processor.state.value}): {e}", exc_info=True)
        if not processor.grant_is_durable:
            # Nothing durable yet or a partial grant: the provider must redeliver to complete it
            raise WebhookProcessingError(str(e)) from e
        # Grant already stored - return 200 to prevent retries
        return {"status": "error", "message": "Webhook processing failed"}
