"""Redis client for access tokens, webhook locks and rate limiting"""
import logging
import secrets
from typing import Optional

import redis

from paywall.core.config import settings
from paywall.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    Socket timeouts keep every call bounded; a stalled Redis raises instead of hanging.
    """
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
        )
    return _client


def get_redis():
    """Dependency for FastAPI endpoints"""
    return get_redis_client()


def increment_rate_limit(client, identifier: str, window: int) -> int:
    """Increment rate limit counter and return current count.
    MULTI/EXEC creates the key with its TTL only when absent, then increments (fixed window rate limiting)."""
    key = f"ratelimit:{identifier}"

    try:
        pipe = client.pipeline(transaction=True)
        pipe.set(key, 0, ex=window, nx=True)
        pipe.incr(key)
        _, count = pipe.execute()
    except redis.RedisError as e:
        raise TransientStoreError(f"Rate limit store unavailable: {type(e).__name__}") from e
    return int(count)


def acquire_lock(client, lock_key: str, timeout: int = 30) -> Optional[str]:
    """Acquire a distributed lock using Redis SET with NX and EX.

    Args:
        client: Redis client
        lock_key: The lock key to acquire
        timeout: Lock expiration in seconds

    Returns:
        A random owner token if the lock was acquired, None if it is already held
    """
    lock_token = secrets.token_hex(16)
    try:
        result = client.set(lock_key, lock_token, nx=True, ex=timeout)
    except redis.RedisError as e:
        raise TransientStoreError(f"Lock store unavailable: {type(e).__name__}") from e
    return lock_token if result else None


def release_lock(client, lock_key: str, lock_token: str) -> bool:
    """Release a lock only if ``lock_token`` still owns it.

    A holder that outlived its timeout must not delete a lock taken over by
    someone else. Failure is only logged: the lock expires on its own.
    """
    try:
        with client.pipeline() as pipe:
            pipe.watch(lock_key)
            if pipe.get(lock_key) != lock_token:
                pipe.unwatch()
                logger.warning(f"Lock {lock_key} is no longer held by this owner; not releasing")
                return False
            pipe.multi()
            pipe.delete(lock_key)
            pipe.execute()
            return True
    except redis.WatchError:
        logger.warning(f"Lock {lock_key} changed while releasing; not releasing")
        return False
    except redis.RedisError as e:
        logger.warning(f"Failed to release lock {lock_key}: {e}")
        return False
