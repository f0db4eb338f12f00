"""
Redis client initialization and connection management.

Redis backs the notification dedupe keys so a replayed event does not
re-send email or SMS.
"""

import redis.asyncio as redis
from backend.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    This can be used as a FastAPI dependency if needed.
    """
    return redis_client


async def claim_once(key: str, ttl_seconds: int) -> bool:
    """
    Atomically claim a key for the first caller.

    Returns:
        True if this caller set the key, False if it already existed
    """
    return bool(await redis_client.set(key, "1", ex=ttl_seconds, nx=True))


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception:
        return False
