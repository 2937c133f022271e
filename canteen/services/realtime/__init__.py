"""
Realtime Hub

Factory picks the in-process hub or the Redis backplane based on settings.
"""

import logging

import redis.asyncio as aioredis

from canteen.core.config import RealtimeBackend, Settings
from canteen.services.realtime.hub import Connection, RealtimeHub
from canteen.services.realtime.redis_hub import RedisRealtimeHub

logger = logging.getLogger(__name__)


def build_realtime_hub(settings: Settings) -> RealtimeHub:
    if settings.effective_realtime_backend == RealtimeBackend.REDIS:
        logger.info("Using Redis realtime backplane")
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        return RedisRealtimeHub(
            client,
            topics=settings.realtime_topics_list,
            queue_size=settings.realtime_queue_size,
            channel_prefix=settings.realtime_channel_prefix,
        )

    logger.info("Using in-process realtime hub")
    return RealtimeHub(
        topics=settings.realtime_topics_list,
        queue_size=settings.realtime_queue_size,
    )


__all__ = ["Connection", "RealtimeHub", "RedisRealtimeHub", "build_realtime_hub"]
