"""Access gate - per-request decision whether a reader may see an article"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from paywall.core.errors import NotFoundOrExpired
from paywall.core.logging import mask_email, mask_token
from paywall.core.metrics import access_decisions_counter
from paywall.db.payment_store import PaymentRecordStore
from paywall.schemas.access import AccessToken, normalize_email
from paywall.services.token_service import DenialReason, TokenService

logger = logging.getLogger(__name__)


class AccessState(str, enum.Enum):
    NO_TOKEN = "NO_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_VALID = "TOKEN_VALID"
    PAID_NO_TOKEN = "PAID_NO_TOKEN"
    NO_ACCESS = "NO_ACCESS"


class Decision(str, enum.Enum):
    GRANT = "grant"
    DENY = "deny"
    RENEW_AND_GRANT = "renew_and_grant"


@dataclass(frozen=True)
class AccessDecision:
    decision: Decision
    state: AccessState
    token: Optional[AccessToken] = None

    @property
    def has_access(self) -> bool:
        return self.decision != Decision.DENY

    @property
    def token_renewed(self) -> bool:
        return self.decision == Decision.RENEW_AND_GRANT


class AccessGate:
    """Decides {grant, deny, renew-and-grant} from an optional presented token.

    Every renewal or reissue re-checks the payment record store; possession of
    an expired token alone is never enough.
    """

    def __init__(self, tokens: TokenService, payments: PaymentRecordStore):
        self.tokens = tokens
        self.payments = payments

    def check(
        self,
        article_slug: str,
        token_id: Optional[str] = None,
        email: Optional[str] = None
    ) -> AccessDecision:
        """Run the gate.

        Args:
            article_slug: Article being requested
            token_id: Token presented by the caller (cookie or magic link), if any
            email: Caller-supplied email; only the resend path has one

        Raises:
            TransientStoreError: If a store is unavailable. Callers must treat
                this as "unknown", not as "no access".
        """
        if not token_id:
            result = self._check_without_token(article_slug, email)
        else:
            result = self._check_with_token(article_slug, token_id)

        access_decisions_counter.labels(decision=result.decision.value, state=result.state.value).inc()
        return result

    def _check_without_token(self, article_slug: str, email: Optional[str]) -> AccessDecision:
        # Anonymous requests carry no identity to re-derive from
        if not email:
            return AccessDecision(Decision.DENY, AccessState.NO_ACCESS)

        email = normalize_email(email)
        if self.payments.get(email, article_slug) is None:
            return AccessDecision(Decision.DENY, AccessState.NO_ACCESS)

        token = self.tokens.issue(article_slug, email, reason="reissue")
        logger.info(f"Reissued access for {article_slug} to {mask_email(email)} (paid, no token)")
        return AccessDecision(Decision.RENEW_AND_GRANT, AccessState.PAID_NO_TOKEN, token)

    def _check_with_token(self, article_slug: str, token_id: str) -> AccessDecision:
        validation = self.tokens.validate(article_slug, token_id)

        if validation.granted:
            return AccessDecision(Decision.GRANT, AccessState.TOKEN_VALID, validation.record)

        if validation.reason == DenialReason.NOT_FOUND:
            return AccessDecision(Decision.DENY, AccessState.NO_ACCESS)

        # EXPIRED: the expired record still names its owner
        owner = validation.record.email
        if self.payments.get(owner, article_slug) is None:
            logger.warning(
                f"Expired token {mask_token(token_id)} for {article_slug} has no matching payment record"
            )
            return AccessDecision(Decision.DENY, AccessState.NO_ACCESS)

        try:
            token = self.tokens.renew(article_slug, token_id, owner)
        except NotFoundOrExpired:
            # Record vanished or changed owner between validate and renew
            return AccessDecision(Decision.DENY, AccessState.NO_ACCESS)
        return AccessDecision(Decision.RENEW_AND_GRANT, AccessState.TOKEN_EXPIRED, token)
