"""Token service - issuance, validation and renewal of article access tokens"""
import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from paywall.core.config import settings
from paywall.core.errors import NotFoundOrExpired
from paywall.core.logging import mask_email, mask_token, security_logger
from paywall.core.metrics import tokens_issued_counter
from paywall.db.token_store import TokenStore
from paywall.schemas.access import AccessToken, normalize_email

logger = logging.getLogger(__name__)

# 32 random bytes -> 43 url-safe characters, 256 bits of entropy
TOKEN_ID_BYTES = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token_id() -> str:
    """Unguessable token identifier; uniqueness comes from entropy, not collision checks"""
    return secrets.token_urlsafe(TOKEN_ID_BYTES)


class DenialReason(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of ``TokenService.validate``.

    ``record`` is set when granted and also when EXPIRED, since the expired
    record still names its owner and the access gate needs it for renewal.
    """
    granted: bool
    record: Optional[AccessToken] = None
    reason: Optional[DenialReason] = None


class TokenService:
    """Owns every token-shape decision: id generation, lifetime and expiry comparison."""

    def __init__(
        self,
        store: TokenStore,
        lifetime: timedelta = None,
        renewal_grace: timedelta = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.lifetime = lifetime or timedelta(days=settings.TOKEN_LIFETIME_DAYS)
        self.renewal_grace = renewal_grace if renewal_grace is not None else timedelta(days=settings.TOKEN_RENEWAL_GRACE_DAYS)
        self.clock = clock

    @property
    def ttl_hint(self) -> int:
        """Storage TTL: token lifetime plus the window in which expired tokens may still be renewed"""
        return int((self.lifetime + self.renewal_grace).total_seconds())

    def issue(self, article_slug: str, email: str, reason: str = "purchase") -> AccessToken:
        """Create and persist a brand new token for (article_slug, email)"""
        now = self.clock()
        token = AccessToken(
            article_slug=article_slug,
            token_id=generate_token_id(),
            email=normalize_email(email),
            created_at=now,
            expires_at=now + self.lifetime,
        )
        self.store.put(article_slug, token.token_id, token, self.ttl_hint)
        tokens_issued_counter.labels(reason=reason).inc()
        logger.info(
            f"Issued access token {mask_token(token.token_id)} for {article_slug} "
            f"to {mask_email(token.email)} (reason={reason})"
        )
        return token

    def validate(self, article_slug: str, token_id: str) -> TokenValidation:
        """Read-only check of a presented token"""
        if not token_id:
            return TokenValidation(granted=False, reason=DenialReason.NOT_FOUND)

        record = self.store.get(article_slug, token_id)
        if record is None:
            return TokenValidation(granted=False, reason=DenialReason.NOT_FOUND)

        if not record.is_valid_at(self.clock()):
            return TokenValidation(granted=False, record=record, reason=DenialReason.EXPIRED)

        return TokenValidation(granted=True, record=record)

    def renew(self, article_slug: str, token_id: str, email: str) -> AccessToken:
        """Move expires_at to exactly now + lifetime under the same token id.

        Only the stored owner may renew; the email and created_at of the
        record never change. Repeated calls re-extend from the current
        instant and leftover time is never carried over.

        Raises:
            NotFoundOrExpired: No record exists or ``email`` is not its owner
        """
        now = self.clock()
        existing = self.store.get(article_slug, token_id)
        if existing is None or existing.email != normalize_email(email):
            security_logger.warning(
                f"Refused renewal of token {mask_token(token_id)} for {article_slug} "
                f"by {mask_email(email)}: not the token owner"
            )
            raise NotFoundOrExpired(f"No renewable token {mask_token(token_id)} for {article_slug}")

        token = existing.model_copy(update={"expires_at": now + self.lifetime})
        self.store.put(article_slug, token_id, token, self.ttl_hint)
        tokens_issued_counter.labels(reason="renewal").inc()
        logger.info(f"Renewed access token {mask_token(token_id)} for {article_slug} until {token.expires_at.isoformat()}")
        return token
