"""Payment webhook processing - signed provider event to durable access grant"""
import enum
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from paywall.core.config import settings
from paywall.core.errors import AuthenticityError, ConfigurationError, PaymentMetadataError, WebhookInProgress
from paywall.core.logging import mask_email, security_logger
from paywall.core.metrics import webhook_events_counter
from paywall.db.payment_store import (
    PaymentRecordStore, log_payment_event, mark_payment_event_processed
)
from paywall.db.redis import acquire_lock, release_lock
from paywall.services.email.base import BaseNotifier
from paywall.services.email_service import send_magic_link_email
from paywall.services.payments.base import BasePaymentProvider
from paywall.services.token_service import TokenService

logger = logging.getLogger(__name__)


class WebhookState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    SIGNATURE_VERIFIED = "SIGNATURE_VERIFIED"
    RELEVANT = "RELEVANT"
    IGNORED = "IGNORED"
    RECORDED = "RECORDED"
    TOKEN_ISSUED = "TOKEN_ISSUED"
    NOTIFIED = "NOTIFIED"
    DONE = "DONE"
    REJECTED = "REJECTED"


class PaymentWebhookProcessor:
    """Turns one inbound payment event into a payment record, a token and a magic link email.

    Safe under at-least-once delivery: the provider payment id is the
    idempotency key, and a redelivery of a completed payment is acknowledged
    without issuing anything new.
    """

    def __init__(
        self,
        provider: BasePaymentProvider,
        tokens: TokenService,
        db: Session,
        notifier: BaseNotifier,
        redis_client,
        webhook_secret: str = None
    ):
        self.provider = provider
        self.tokens = tokens
        self.db = db
        self.payments = PaymentRecordStore(db)
        self.notifier = notifier
        self.redis = redis_client
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.state = WebhookState.RECEIVED

    def process(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Process a raw webhook delivery.

        Returns:
            Dict with a ``status`` key: ``success``, ``ignored`` or ``already_processed``

        Raises:
            ConfigurationError: Webhook secret not configured
            AuthenticityError: Signature missing or invalid (nothing is written)
            ValidationError: Signed body is not a parseable event
            PaymentMetadataError: Paid event without email or article (logged in the event log)
            WebhookInProgress: Another delivery of the same payment holds the lock
            TransientStoreError: A store failed; the provider should retry
        """
        if not self.webhook_secret:
            logger.error("Webhook secret not configured")
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")

        try:
            event = self.provider.construct_event(payload, signature, self.webhook_secret)
        except AuthenticityError:
            self.state = WebhookState.REJECTED
            webhook_events_counter.labels(status="rejected").inc()
            security_logger.warning("Rejected payment webhook with invalid signature")
            raise
        self.state = WebhookState.SIGNATURE_VERIFIED

        event_type = self.provider.event_type(event)
        try:
            payment = self.provider.extract_payment(event)
        except PaymentMetadataError as e:
            # Money changed hands but nothing can be granted: keep an auditable trace
            webhook_events_counter.labels(status="unactionable").inc()
            logger.error(f"Unactionable paid event {event_type}: {e}")
            if e.payment_id:
                log_payment_event(e.payment_id, event_type, self.db)
                mark_payment_event_processed(e.payment_id, self.db, error_message=str(e))
            raise

        if payment is None:
            self.state = WebhookState.IGNORED
            webhook_events_counter.labels(status="ignored").inc()
            logger.info(f"Ignoring payment webhook event of type {event_type}")
            self.state = WebhookState.DONE
            return {"status": "ignored"}
        self.state = WebhookState.RELEVANT

        lock_key = f"webhook_lock:{payment.payment_id}"
        lock_token = acquire_lock(self.redis, lock_key, timeout=settings.WEBHOOK_LOCK_TIMEOUT)
        if lock_token is None:
            webhook_events_counter.labels(status="in_progress").inc()
            logger.info(f"Payment {payment.payment_id} is already being processed")
            raise WebhookInProgress(payment.payment_id)

        try:
            return self._grant(payment)
        finally:
            release_lock(self.redis, lock_key, lock_token)

    @property
    def grant_is_durable(self) -> bool:
        """True once the payment record and token exist and the event is marked processed"""
        return self.state in (WebhookState.TOKEN_ISSUED, WebhookState.NOTIFIED, WebhookState.DONE)

    def _grant(self, payment) -> Dict[str, Any]:
        payment_event = log_payment_event(
            payment.payment_id,
            payment.event_type,
            self.db,
            email=payment.email,
            article_slug=payment.article_slug
        )
        if payment_event.processed:
            self.state = WebhookState.DONE
            webhook_events_counter.labels(status="duplicate").inc()
            logger.info(f"Payment {payment.payment_id} already processed")
            return {"status": "already_processed"}

        self.payments.put(payment.email, payment.article_slug, payment.payment_id)
        self.state = WebhookState.RECORDED

        token = self.tokens.issue(payment.article_slug, payment.email, reason="purchase")
        mark_payment_event_processed(payment.payment_id, self.db)
        # The grant is durable from here on; delivery problems must not trigger provider retries
        self.state = WebhookState.TOKEN_ISSUED

        if send_magic_link_email(self.notifier, token):
            self.state = WebhookState.NOTIFIED
        else:
            logger.error(
                f"Access for payment {payment.payment_id} granted to {mask_email(payment.email)} "
                f"but the magic link was not delivered; reader can request a resend"
            )

        self.state = WebhookState.DONE
        webhook_events_counter.labels(status="success").inc()
        logger.info(f"Processed payment {payment.payment_id} for {payment.article_slug}")
        return {"status": "success"}
