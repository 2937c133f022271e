"""
Redis-backed Realtime Hub

Extends the in-process hub across server processes. publish() sends the
event envelope to a Redis channel (prefix + topic); every process runs one
listener on `prefix*` and fans messages it receives out to its own local
subscribers. The publishing process receives its own messages back through
the listener like everyone else, so delivery never happens twice.
"""

import asyncio
import json
import logging
from typing import Any, Iterable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from canteen.core.exceptions import HubUnavailableError
from canteen.services.realtime.hub import RealtimeHub

logger = logging.getLogger(__name__)


class RedisRealtimeHub(RealtimeHub):
    """
    Realtime hub with a Redis pub/sub backplane.

    Example:
        >>> client = redis.asyncio.from_url("redis://localhost:6379/0", decode_responses=True)
        >>> hub = RedisRealtimeHub(client, topics=["staff", "customer"])
        >>> await hub.start()
    """

    backend_name = "redis"

    def __init__(
        self,
        client: aioredis.Redis,
        topics: Optional[Iterable[str]] = None,
        queue_size: int = 256,
        channel_prefix: str = "canteen:realtime:",
    ):
        super().__init__(topics=topics, queue_size=queue_size)
        self._redis = client
        self.channel_prefix = channel_prefix
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    def channel_for(self, topic: str) -> str:
        return f"{self.channel_prefix}{topic}"

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(f"{self.channel_prefix}*")
        self._listener = asyncio.create_task(self._listen(), name="realtime-redis-listener")
        logger.info(f"Realtime backplane listening on {self.channel_prefix}*")

    async def close(self) -> None:
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        await self._redis.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    # =========================================================================
    # PUBLISH / RECEIVE
    # =========================================================================

    async def publish(self, topic: str, event: str, payload: Any) -> int:
        """
        Send an event to every process through Redis.

        Returns:
            int: Number of processes subscribed to the channel

        Raises:
            HubUnavailableError: Redis rejected or could not take the message
        """
        message = json.dumps(self.envelope(topic, event, payload))
        try:
            receivers = await self._redis.publish(self.channel_for(topic), message)
        except RedisError as e:
            raise HubUnavailableError(f"Could not publish {event} to {topic}", cause=e) from e
        logger.debug(f"Published {event} to {self.channel_for(topic)} ({receivers} processes)")
        return int(receivers)

    async def _listen(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except RedisError as e:
                logger.error(f"Realtime backplane read failed: {e}; retrying")
                await asyncio.sleep(1.0)
                continue
            if message is not None:
                self._handle_message(message)

    def _handle_message(self, message: dict) -> int:
        channel = message.get("channel") or ""
        if not channel.startswith(self.channel_prefix):
            return 0
        topic = channel[len(self.channel_prefix):]
        try:
            envelope = json.loads(message.get("data") or "")
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed realtime message on {channel}")
            return 0
        return self.deliver_local(topic, envelope)
