"""Email service - magic link composition and delivery"""
import html
import logging
from urllib.parse import urlencode

from paywall.core.config import settings
from paywall.core.errors import DeliveryError
from paywall.core.logging import mask_email
from paywall.core.metrics import notification_failures_counter
from paywall.schemas.access import AccessToken
from paywall.services.email.base import BaseNotifier

logger = logging.getLogger(__name__)


def build_magic_link(article_slug: str, token_id: str) -> str:
    """URL that, when visited, turns (article_slug, token_id) into an access cookie"""
    query = urlencode({"articleSlug": article_slug, "token": token_id})
    return f"{settings.BACKEND_URL.rstrip('/')}/api/paywall/magic-link?{query}"


def build_article_url(article_slug: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/{article_slug}/"


def compose_magic_link_email(article_slug: str, link: str) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body) for a magic link email"""
    subject = f"Your access link for {article_slug}"
    safe_link = html.escape(link, quote=True)
    html_body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>Your access link is ready</h2>
      <p>Thanks for your purchase. Click the button below to read the article:</p>
      <p style="margin: 30px 0;">
        <a href="{safe_link}" target="_blank" rel="noopener noreferrer"
           style="display: inline-block; padding: 12px 24px; background-color: #635bff; color: white; text-decoration: none; border-radius: 4px; font-weight: bold;">
          Read the article
        </a>
      </p>
      <p style="color: #999; font-size: 12px; margin-top: 20px;">
        Or copy and paste this link into your browser:<br/>
        {safe_link}
      </p>
      <p style="color: #999; font-size: 12px;">
        Keep this email: you can use the link again on another device.
      </p>
    </div>
    """
    text_body = (
        "Thanks for your purchase.\n\n"
        f"Open this link to read the article: {link}\n\n"
        "Keep this email: you can use the link again on another device.\n"
    )
    return subject, html_body, text_body


def send_magic_link_email(notifier: BaseNotifier, token: AccessToken) -> bool:
    """Send the magic link for ``token`` to its owner.

    Delivery problems are logged and reported as False; the grant itself is
    already durable and a resend request can compensate.
    """
    link = build_magic_link(token.article_slug, token.token_id)
    subject, html_body, text_body = compose_magic_link_email(token.article_slug, link)
    try:
        notifier.send(token.email, subject, html_body, text_body)
        return True
    except DeliveryError as exc:
        notification_failures_counter.labels(provider=notifier.name or "unknown").inc()
        logger.error(
            f"Failed to deliver magic link for {token.article_slug} to {mask_email(token.email)}: {exc}"
        )
        return False
