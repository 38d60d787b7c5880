"""Redis-backed access token store"""
import logging
from typing import Optional

import redis
from pydantic import ValidationError as PydanticValidationError

from paywall.core.errors import TransientStoreError
from paywall.core.logging import mask_token
from paywall.schemas.access import AccessToken

logger = logging.getLogger(__name__)


class TokenStore:
    """Key-value persistence for access tokens keyed by (article_slug, token_id).

    Expiry is decided by the caller from ``expires_at``; the Redis TTL passed to
    ``put`` only reclaims space and must outlive the token itself.
    """

    KEY_PREFIX = "access_token"

    def __init__(self, client):
        self._client = client

    def _key(self, article_slug: str, token_id: str) -> str:
        return f"{self.KEY_PREFIX}:{article_slug}:{token_id}"

    def get(self, article_slug: str, token_id: str) -> Optional[AccessToken]:
        try:
            raw = self._client.get(self._key(article_slug, token_id))
        except redis.RedisError as e:
            raise TransientStoreError(f"Token store unavailable: {type(e).__name__}") from e

        if raw is None:
            return None

        try:
            token = AccessToken.model_validate_json(raw)
        except PydanticValidationError:
            # Unreadable records never grant access
            logger.error(f"Corrupt token record for {article_slug}/{mask_token(token_id)}")
            return None

        if token.article_slug != article_slug or token.token_id != token_id:
            logger.error(f"Token record key mismatch for {article_slug}/{mask_token(token_id)}")
            return None
        return token

    def put(self, article_slug: str, token_id: str, token: AccessToken, ttl_hint: int) -> None:
        """Write a token record with a single atomic SET ... EX"""
        try:
            self._client.set(
                self._key(article_slug, token_id),
                token.model_dump_json(),
                ex=max(int(ttl_hint), 1)
            )
        except redis.RedisError as e:
            raise TransientStoreError(f"Token store unavailable: {type(e).__name__}") from e
