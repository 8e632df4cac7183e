# config/cache.py
import logging
from typing import Optional
from urllib.parse import urlsplit
from redis.asyncio import Redis, from_url
from config.settings import settings

logger = logging.getLogger(__name__)

_client: Optional[Redis] = None


async def get_redis() -> Redis:
    """
    Process-wide client shared by the job store, the result store and the rate
    limiter. Created on first use and pinged once, so an unreachable Redis fails
    startup rather than the first request.
    """
    global _client
    if _client is None:
        target = settings.REDIS_URL
        client = from_url(
            target,
            encoding="utf-8",
            decode_responses=False,  # repositories decode what they read
            socket_keepalive=True,
            health_check_interval=settings.REDIS_HEALTH_CHECK_SECONDS,
        )
        await client.ping()
        _client = client
        logger.info("redis.connected host=%s", urlsplit(target).hostname)
    return _client


async def close_redis() -> None:
    global _client
    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()
    logger.info("redis.closed")
