"""SendGrid email notifier (v3 mail/send over HTTPX)"""
import logging

import httpx

from paywall.core.errors import DeliveryError
from paywall.core.logging import mask_email
from paywall.services.email.base import BaseNotifier

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridNotifier(BaseNotifier):
    name = "sendgrid"

    def __init__(self, api_key: str, from_email: str, timeout: float = 10.0, http_client: httpx.Client = None):
        self._api_key = api_key
        self._from_email = from_email
        self._timeout = timeout
        self._http_client = http_client

    def _payload(self, to_email: str, subject: str, html_body: str, text_body: str) -> dict:
        # SendGrid requires text/plain before text/html
        return {
            "personalizations": [{"to": [{"email": to_email}], "subject": subject}],
            "from": {"email": self._from_email},
            "content": [
                {"type": "text/plain", "value": text_body},
                {"type": "text/html", "value": html_body},
            ],
        }

    def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        body = self._payload(to_email, subject, html_body, text_body)
        try:
            if self._http_client is not None:
                response = self._http_client.post(SENDGRID_SEND_URL, json=body, headers=headers, timeout=self._timeout)
            else:
                response = httpx.post(SENDGRID_SEND_URL, json=body, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"SendGrid request failed: {type(exc).__name__}") from exc

        if response.status_code >= 300:
            raise DeliveryError(f"SendGrid API error: {response.status_code}")
        logger.info(f"Email sent to {mask_email(to_email)} via sendgrid")
