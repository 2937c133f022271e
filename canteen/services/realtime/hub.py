"""
Realtime Hub

Topic-based fan-out of order events to connected WebSocket clients.

Each connection owns exactly one bounded outbound queue drained by one
writer task, so everything published to a connection arrives in publish
order. publish() only enqueues; a slow client never stalls the publisher or
other clients. Delivery is at-most-once and only to connections subscribed
at publish time. Clients that missed an event resynchronise through the
tracking lookup.

The hub has no business logic and never touches the order store.
"""

import asyncio
import logging
import uuid
from typing import Any, Iterable, Optional, Protocol

from canteen.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class JsonSocket(Protocol):
    """Anything that can push a JSON frame, e.g. starlette's WebSocket."""

    async def send_json(self, data: Any) -> None: ...


class Connection:
    """
    One connected client.

    Attributes:
        id: Hub-assigned connection id
        topics: Topics this connection currently receives
        closed: True once the socket failed or the client disconnected
    """

    def __init__(self, socket: JsonSocket, queue_size: int = 256):
        self.id = uuid.uuid4().hex
        self.socket = socket
        self.topics: set[str] = set()
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._writer = asyncio.create_task(self._run(), name=f"ws-writer-{self.id[:8]}")

    def offer(self, message: dict) -> bool:
        """Queue a frame without waiting. False when the queue is full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.socket.send_json(message)
            except Exception as e:
                logger.info(f"Connection {self.id[:8]} send failed ({e!r}); closing")
                self.closed = True
                self._queue.task_done()
                self._discard_pending()
                return
            self._queue.task_done()

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued frame has been handed to the socket."""
        await self._queue.join()

    async def close(self) -> None:
        self.closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        self._discard_pending()


class RealtimeHub:
    """
    In-process topic hub.

    Example:
        >>> hub = RealtimeHub(topics=["staff", "customer"])
        >>> conn = await hub.connect(websocket)
        >>> hub.subscribe(conn, "staff")
        >>> await hub.publish("staff", "new-order", snapshot)
        1
    """

    backend_name = "local"

    def __init__(self, topics: Optional[Iterable[str]] = None, queue_size: int = 256):
        self.allowed_topics: Optional[frozenset[str]] = frozenset(topics) if topics else None
        self.queue_size = queue_size
        self._connections: dict[str, Connection] = {}
        self._topics: dict[str, set[Connection]] = {}

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        for connection in list(self._connections.values()):
            await self.disconnect(connection)

    async def health_check(self) -> bool:
        return True

    # =========================================================================
    # CONNECTIONS & SUBSCRIPTIONS
    # =========================================================================

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    async def connect(self, socket: JsonSocket) -> Connection:
        connection = Connection(socket, queue_size=self.queue_size)
        connection.start()
        self._connections[connection.id] = connection
        logger.info(f"Realtime connection {connection.id[:8]} opened ({self.connection_count} open)")
        return connection

    async def disconnect(self, connection: Connection) -> None:
        """Drop every subscription of a connection and stop its writer. Idempotent."""
        for topic in list(connection.topics):
            self.unsubscribe(connection, topic)
        if self._connections.pop(connection.id, None) is not None:
            logger.info(f"Realtime connection {connection.id[:8]} closed ({self.connection_count} open)")
        await connection.close()

    def subscribe(self, connection: Connection, topic: str) -> None:
        if self.allowed_topics is not None and topic not in self.allowed_topics:
            raise ValidationError(
                f"Unknown topic: {topic}",
                details={"allowed": sorted(self.allowed_topics)},
            )
        self._topics.setdefault(topic, set()).add(connection)
        connection.topics.add(topic)
        logger.debug(f"Connection {connection.id[:8]} joined {topic}")

    def unsubscribe(self, connection: Connection, topic: str) -> None:
        members = self._topics.get(topic)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._topics[topic]
        connection.topics.discard(topic)

    # =========================================================================
    # PUBLISHING
    # =========================================================================

    @staticmethod
    def envelope(topic: str, event: str, payload: Any) -> dict:
        return {"event": event, "topic": topic, "data": payload}

    def deliver_local(self, topic: str, message: dict) -> int:
        """Queue a frame for every live subscriber of `topic`."""
        delivered = 0
        for connection in list(self._topics.get(topic, ())):
            if connection.closed:
                self.unsubscribe(connection, topic)
                continue
            if connection.offer(message):
                delivered += 1
            else:
                logger.warning(
                    f"Connection {connection.id[:8]} queue full; "
                    f"dropped {message.get('event')} on {topic}"
                )
        return delivered

    async def publish(self, topic: str, event: str, payload: Any) -> int:
        """
        Broadcast an event to a topic.

        Returns:
            int: Number of connections the event was queued for
                 (0 for a topic without subscribers)
        """
        delivered = self.deliver_local(topic, self.envelope(topic, event, payload))
        logger.debug(f"Published {event} to {topic} ({delivered} connections)")
        return delivered
