"""
Redis access for wedfund.

Redis is optional. When REDIS_URL is unset every cache read misses and
every write is dropped, so the app runs (more slowly) without it.
"""

import json
import logging
from typing import Optional, Dict, Any

from redis import asyncio as aioredis
from redis.asyncio.client import Redis
from redis.exceptions import RedisError

from wedfund.config import settings

logger = logging.getLogger(__name__)

PESAPAL_TOKEN_KEY = "pesapal:token"


class RedisClient:
    """Lazily created connection shared by the whole process."""

    _client: Optional[Redis] = None

    @classmethod
    def get_client(cls) -> Optional[Redis]:
        if cls._client is None:
            if not settings.redis_url:
                return None

            cls._client = aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5.0,
            )
            logger.info("Redis client initialized")

        return cls._client

    @classmethod
    async def close(cls):
        if cls._client:
            await cls._client.aclose()
            cls._client = None
            logger.info("Redis client closed")


class TokenCache:
    """
    Stores the Pesapal bearer token as a JSON blob with a TTL.

    Redis errors are logged and treated as a miss; a cache outage
    must never block a payment.
    """

    def __init__(self, redis: Optional[Redis] = None, key: str = PESAPAL_TOKEN_KEY):
        self._redis = redis
        self.key = key

    def _conn(self) -> Optional[Redis]:
        return self._redis or RedisClient.get_client()

    async def get(self) -> Optional[Dict[str, Any]]:
        conn = self._conn()
        if conn is None:
            return None
        try:
            raw = await conn.get(self.key)
        except RedisError as e:
            logger.warning(f"Token cache read failed: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cached token")
            return None

    async def set(self, payload: Dict[str, Any], ttl: int) -> None:
        if ttl <= 0:
            return
        conn = self._conn()
        if conn is None:
            return
        try:
            await conn.set(self.key, json.dumps(payload), ex=ttl)
        except RedisError as e:
            logger.warning(f"Token cache write failed: {e}")
