"""Opaque session tokens stored in Redis with a fixed TTL."""

import logging
import secrets
from typing import Optional

from redis.asyncio import Redis

log = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def session_key(token: str) -> str:
    return f"{SESSION_KEY_PREFIX}{token}"


class SessionManager:
    """Issue, resolve and revoke session tokens.

    The cache owns token lifetime: expiry is fixed at issuance and never
    refreshed on access. Absence of a mapping is reported as ``None``.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds

    async def issue(self, user_id: int) -> str:
        """Create a new token for user_id and store it with the TTL."""
        token = secrets.token_urlsafe(32)
        await self._redis.set(session_key(token), str(user_id), ex=self.ttl_seconds)
        log.debug("Issued session for user_id=%s", user_id)
        return token

    async def resolve(self, token: Optional[str]) -> Optional[int]:
        """Return the user id for token, or None if missing or expired."""
        if not token:
            return None
        value = await self._redis.get(session_key(token))
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            log.warning("Session value is not a user id; ignoring")
            return None

    async def revoke(self, token: str) -> None:
        """Delete the mapping. Revoking an unknown token is a no-op."""
        await self._redis.delete(session_key(token))
