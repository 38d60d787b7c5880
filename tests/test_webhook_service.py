"""Payment webhook processing tests"""
import pytest
from unittest.mock import patch

from paywall.core.errors import (
    AuthenticityError, ConfigurationError, PaymentMetadataError, WebhookInProgress
)
from paywall.db.payment_store import get_payment_event
from paywall.models.payment_record import PaymentRecord
from paywall.services.webhook_service import WebhookState


def _tokens_for(fake_redis, article_slug):
    return list(fake_redis.scan_iter(f"access_token:{article_slug}:*"))


@pytest.mark.critical
class TestWebhookProcessing:
    """Signed event to payment record, token and email"""

    def test_paid_checkout_grants_access(self, make_processor, paid_event, sign, db_session, notifier, fake_redis, payment_store):
        """Valid paid event: one payment record, one token, one email"""
        processor = make_processor()
        payload = paid_event(email="b@y.com", article_slug="go-basics")

        result = processor.process(payload, sign(payload))

        assert result == {"status": "success"}
        assert processor.state == WebhookState.DONE
        assert payment_store.get("b@y.com", "go-basics") is not None
        assert len(_tokens_for(fake_redis, "go-basics")) == 1
        assert len(notifier.sent) == 1
        assert notifier.sent[0]["to"] == "b@y.com"
        assert "/api/paywall/magic-link?articleSlug=go-basics&token=" in notifier.sent[0]["text"]

        event = get_payment_event("cs_test_123", db_session)
        assert event.processed is True
        assert event.error_message is None

    def test_bad_signature_rejected_without_side_effects(self, make_processor, paid_event, sign, db_session, notifier, fake_redis):
        processor = make_processor()
        payload = paid_event()

        with pytest.raises(AuthenticityError):
            processor.process(payload, sign(payload, secret="whsec_wrong"))

        assert processor.state == WebhookState.REJECTED
        assert db_session.query(PaymentRecord).count() == 0
        assert _tokens_for(fake_redis, "go-basics") == []
        assert notifier.sent == []

    def test_tampered_body_rejected(self, make_processor, paid_event, sign):
        signature = sign(paid_event(email="b@y.com"))
        tampered = paid_event(email="attacker@y.com")

        with pytest.raises(AuthenticityError):
            make_processor().process(tampered, signature)

    def test_missing_signature_rejected(self, make_processor, paid_event):
        with pytest.raises(AuthenticityError):
            make_processor().process(paid_event(), "")

    def test_missing_secret_is_configuration_error(self, make_processor, paid_event, sign):
        payload = paid_event()

        with pytest.raises(ConfigurationError):
            make_processor(webhook_secret="").process(payload, sign(payload))

    def test_redelivery_is_idempotent(self, make_processor, paid_event, sign, db_session, notifier, fake_redis):
        """The same event twice yields one payment record, one token and one email"""
        payload = paid_event()
        make_processor().process(payload, sign(payload))

        result = make_processor().process(payload, sign(payload))

        assert result == {"status": "already_processed"}
        assert db_session.query(PaymentRecord).count() == 1
        assert len(_tokens_for(fake_redis, "go-basics")) == 1
        assert len(notifier.sent) == 1

    def test_unrelated_event_ignored(self, make_processor, paid_event, sign, db_session):
        processor = make_processor()
        payload = paid_event(event_type="customer.created")

        result = processor.process(payload, sign(payload))

        assert result == {"status": "ignored"}
        assert processor.state == WebhookState.DONE
        assert db_session.query(PaymentRecord).count() == 0

    def test_unpaid_checkout_ignored(self, make_processor, paid_event, sign, db_session):
        payload = paid_event(payment_status="unpaid")

        assert make_processor().process(payload, sign(payload)) == {"status": "ignored"}
        assert db_session.query(PaymentRecord).count() == 0

    def test_missing_article_slug_is_logged(self, make_processor, paid_event, sign, db_session, notifier):
        """Paid but unactionable: nothing granted, error kept in the event log"""
        payload = paid_event(session_id="cs_no_slug", article_slug=None)

        with pytest.raises(PaymentMetadataError):
            make_processor().process(payload, sign(payload))

        assert db_session.query(PaymentRecord).count() == 0
        assert notifier.sent == []
        event = get_payment_event("cs_no_slug", db_session)
        assert event is not None
        assert "articleSlug" in event.error_message

    def test_missing_email_is_logged(self, make_processor, paid_event, sign, db_session):
        payload = paid_event(session_id="cs_no_email", email=None)

        with pytest.raises(PaymentMetadataError):
            make_processor().process(payload, sign(payload))

        assert get_payment_event("cs_no_email", db_session).error_message is not None


@pytest.mark.high
class TestWebhookFailures:
    """Delivery failures and concurrent deliveries"""

    def test_email_failure_still_grants(self, make_processor, failing_notifier, paid_event, sign, fake_redis, payment_store):
        """Notification failure is logged; the grant stands and the provider is not asked to retry"""
        processor = make_processor(notifier_override=failing_notifier)
        payload = paid_event()

        result = processor.process(payload, sign(payload))

        assert result == {"status": "success"}
        assert processor.state == WebhookState.DONE
        assert payment_store.get("reader@example.com", "go-basics") is not None
        assert len(_tokens_for(fake_redis, "go-basics")) == 1

    def test_concurrent_delivery_is_refused(self, make_processor, paid_event, sign, fake_redis, db_session):
        """While another delivery holds the payment lock nothing is written"""
        fake_redis.set("webhook_lock:cs_test_123", "1", ex=30)
        payload = paid_event()

        with pytest.raises(WebhookInProgress):
            make_processor().process(payload, sign(payload))

        assert db_session.query(PaymentRecord).count() == 0

    def test_lock_released_after_processing(self, make_processor, paid_event, sign, fake_redis):
        payload = paid_event()
        make_processor().process(payload, sign(payload))

        assert fake_redis.get("webhook_lock:cs_test_123") is None

    def test_crash_before_completion_is_retried(self, make_processor, paid_event, sign, token_service, db_session, notifier, fake_redis):
        """A delivery that failed after recording the payment completes on the next attempt"""
        payload = paid_event()
        processor = make_processor()

        with patch.object(token_service, "issue", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                processor.process(payload, sign(payload))

        assert processor.state == WebhookState.RECORDED
        assert processor.grant_is_durable is False
        assert fake_redis.get("webhook_lock:cs_test_123") is None
        assert get_payment_event("cs_test_123", db_session).processed is False

        assert make_processor().process(payload, sign(payload)) == {"status": "success"}
        assert db_session.query(PaymentRecord).count() == 1
        assert len(notifier.sent) == 1

    def test_grant_is_durable_once_token_issued(self, make_processor, failing_notifier, paid_event, sign, db_session):
        processor = make_processor(notifier_override=failing_notifier)
        payload = paid_event()
        processor.process(payload, sign(payload))

        assert processor.grant_is_durable is True
        assert get_payment_event("cs_test_123", db_session).processed is True
