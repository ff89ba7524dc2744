"""Fixed-window rate limiting backed by Redis counters."""
import math
import time
from typing import Optional

from redis.exceptions import RedisError

from civic_reporter.core.config import settings
from civic_reporter.core.logging import get_logger
from civic_reporter.services.redis import get_redis

logger = get_logger("civic_reporter.rate_limit")


async def allow(
    kind: str,
    client_id: str,
    *,
    limit: int,
    window_seconds: int = 60,
    now: Optional[float] = None,
) -> bool:
    """Return True while the client is still within its budget for the window."""
    if not settings.RATE_LIMIT_ENABLED:
        return True
    if limit <= 0:
        return False
    now = now or time.time()
    window = max(1, int(window_seconds))
    slot = int(math.floor(now / window))
    key = f"rl:{kind}:{client_id}:{slot}"
    try:
        async with get_redis().pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, window)
            count, _ = await pipe.execute()
    except RedisError as e:
        # Fail open when Redis is unreachable.
        logger.warning(f"Rate limiter unavailable, allowing request: kind={kind}, error={str(e)}")
        return True
    return int(count) <= limit
