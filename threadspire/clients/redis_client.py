"""
Redis client wrapper.

Responsibilities:
  • Rate limiting — fixed-window counters keyed by rate-limit:{identifier}
                    INCR on every hit, EXPIRE set on the first hit of a window
  • Realtime relay — the pub/sub connection used by RedisChangeRelay
"""
import logging

import redis.asyncio as aioredis

from threadspire.config import Settings
from threadspire.errors import RateLimitError
from threadspire.telemetry import RATE_LIMITED_TOTAL

logger = logging.getLogger(__name__)


async def init_redis(settings: Settings) -> aioredis.Redis:
    redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)
    return redis


class RateLimiter:
    """Fixed-window limiter: at most ``max_hits`` per ``window`` seconds per key."""

    KEY = "rate-limit:{identifier}"

    def __init__(self, redis: aioredis.Redis, window: int = 60, max_hits: int = 5):
        self._redis = redis
        self.window = window
        self.max_hits = max_hits

    async def hit(self, identifier: str) -> bool:
        """Count one request; return False once the window is exhausted."""
        key = self.KEY.format(identifier=identifier)
        current = await self._redis.incr(key)
        if current == 1:
            await self._redis.expire(key, self.window)
        return current <= self.max_hits

    async def check(self, action: str, subject: str) -> None:
        if not await self.hit(f"{action}:{subject}"):
            RATE_LIMITED_TOTAL.labels(action=action).inc()
            logger.info("Rate limit exceeded for %s:%s", action, subject)
            raise RateLimitError()
