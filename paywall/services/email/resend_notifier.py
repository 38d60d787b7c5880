"""Resend email notifier"""
import logging

import resend

from paywall.core.errors import DeliveryError
from paywall.core.logging import mask_email
from paywall.services.email.base import BaseNotifier

logger = logging.getLogger(__name__)


class ResendNotifier(BaseNotifier):
    name = "resend"

    def __init__(self, api_key: str, from_email: str):
        self._api_key = api_key
        self._from_email = from_email

    def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        try:
            # The resend SDK only reads its key from module state
            resend.api_key = self._api_key
            response = resend.Emails.send(
                {
                    "from": self._from_email,
                    "to": to_email,
                    "subject": subject,
                    "html": html_body,
                    "text": text_body,
                }
            )
        except Exception as exc:
            raise DeliveryError(f"Resend send failed: {type(exc).__name__}") from exc

        # Resend returns dict with 'id' field on success
        email_id = None
        if isinstance(response, dict):
            email_id = response.get('id')
        elif hasattr(response, 'id'):
            email_id = response.id

        if not email_id:
            raise DeliveryError("Resend returned no message id")
        logger.info(f"Email sent to {mask_email(to_email)} via resend (id: {email_id})")
