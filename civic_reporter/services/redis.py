import redis.asyncio as redis
from civic_reporter.core.config import settings

# Shared Redis connection, used for rate-limit counters
redis_client = redis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    password=settings.REDIS_PASSWORD,
    decode_responses=True,
)


def get_redis() -> redis.Redis:
    return redis_client


def set_redis_client(client: redis.Redis) -> None:
    """Swap the shared client, e.g. for a fake one in tests."""
    global redis_client
    redis_client = client


async def close_redis() -> None:
    await redis_client.aclose()
