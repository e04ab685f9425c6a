"""User Service - Sender profile lookup with a Redis read-through cache."""

import json
import logging
from typing import Optional

from tripchat.database import get_db, get_redis, with_timeout
from tripchat.models.chat_message import SenderInfo
from tripchat.models.user import User

logger = logging.getLogger(__name__)

# Cache configuration
USER_CACHE_TTL = 300  # 5 minutes
USER_CACHE_PREFIX = "tripchat:user:"


class UserService:
    """
    User profile lookups for rendering message senders.
    """

    def _cache_key(self, user_id: str) -> str:
        """Generate cache key for user."""
        return f"{USER_CACHE_PREFIX}{user_id}"

    async def _get_from_cache(self, user_id: str) -> Optional[User]:
        """Get user from Redis cache."""
        try:
            redis = get_redis()
            cached = await redis.get(self._cache_key(user_id))
            if cached:
                return User(**json.loads(cached))
        except Exception as e:
            logger.debug(f"Cache miss for {user_id}: {e}")
        return None

    async def _set_cache(self, user: User):
        """Cache user in Redis."""
        try:
            redis = get_redis()
            await redis.setex(
                self._cache_key(user.user_id),
                USER_CACHE_TTL,
                user.model_dump_json()
            )
        except Exception as e:
            logger.debug(f"Cache set failed: {e}")

    async def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID (cached for 5 min)."""
        cached = await self._get_from_cache(user_id)
        if cached:
            return cached

        db = get_db()
        doc = await with_timeout(
            db.users.find_one({"user_id": user_id}), "user lookup"
        )
        if doc:
            user = User(**doc)
            await self._set_cache(user)
            return user
        return None

    async def resolve_sender(self, user_id: str) -> SenderInfo:
        """Sender identity for broadcast; unknown users render as 'Unknown'."""
        user = await self.get_user(user_id)
        if user:
            return user.as_sender()
        return SenderInfo(id=user_id, name="Unknown")
