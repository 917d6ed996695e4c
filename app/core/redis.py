# app/core/redis.py
import redis.asyncio as redis
from app.core.config import settings

# Shared by the config cache, the scheduler lock and the event publisher.
# decode_responses=True returns str instead of bytes
redis_client = redis.Redis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    health_check_interval=30,
)

async def get_redis_client():
    """
    Dependency that hands the shared Redis client to endpoints.
    """
    return redis_client

async def close_redis_client():
    await redis_client.aclose()
