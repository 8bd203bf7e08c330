import redis.asyncio as redis
from typing import Optional
import logging

from matrix_ai.config.settings import settings

logger = logging.getLogger(__name__)

# Shared by the event bus publisher and every SSE subscriber
_redis_client: Optional[redis.Redis] = None

async def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
        )
    return _redis_client

async def ping_redis() -> bool:
    """True when Redis answers; the live event stream is the only feature that needs it."""
    try:
        client = await get_redis_client()
        await client.ping()
    except Exception as e:
        logger.warning(f"Redis unavailable, live event stream disabled: {e}")
        return False
    logger.info("Redis connection successful")
    return True

async def close_redis_pool():
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
