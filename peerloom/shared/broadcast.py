"""
Topic broadcast primitives.

Delivery is at-most-once and best-effort: messages published while nobody is
subscribed are lost, and nothing is persisted or replayed.

Usage:
    async with broadcaster.subscribe("topic") as deliveries:
        async for data in deliveries:
            ...
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from loguru import logger
from redis.asyncio import Redis


class Broadcaster(ABC):
    """Publish raw payloads to named topics and iterate deliveries."""

    @abstractmethod
    async def publish(self, topic: str, data: bytes) -> int:
        """Returns the number of subscribers that received the payload."""

    @abstractmethod
    def subscribe(self, topic: str) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Subscription is active once the context is entered."""


class RedisBroadcaster(Broadcaster):
    """Broadcaster backed by Redis PUBLISH/SUBSCRIBE."""

    def __init__(self, redis_client: Redis):
        self._redis = redis_client

    async def publish(self, topic: str, data: bytes) -> int:
        receivers = await self._redis.publish(topic, data)
        logger.debug("published {} bytes to {} receivers={}", len(data), topic, receivers)
        return int(receivers)

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[AsyncIterator[bytes]]:
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(topic)
        logger.debug("subscribed to {}", topic)

        async def _deliveries() -> AsyncIterator[bytes]:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message["data"]
                yield data.encode() if isinstance(data, str) else data

        try:
            yield _deliveries()
        finally:
            await pubsub.unsubscribe(topic)
            await pubsub.aclose()
            logger.debug("unsubscribed from {}", topic)


class InMemoryBroadcaster(Broadcaster):
    """Single-process broadcaster, one queue per subscriber."""

    def __init__(self):
        self._subscribers: dict[str, set[asyncio.Queue[bytes]]] = defaultdict(set)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, data: bytes) -> int:
        queues = list(self._subscribers.get(topic, ()))
        for queue in queues:
            queue.put_nowait(data)
        return len(queues)

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[AsyncIterator[bytes]]:
        queue: asyncio.Queue[bytes] = asyncio.Queue()
        self._subscribers[topic].add(queue)

        async def _deliveries() -> AsyncIterator[bytes]:
            while True:
                yield await queue.get()

        try:
            yield _deliveries()
        finally:
            self._subscribers[topic].discard(queue)
            if not self._subscribers[topic]:
                self._subscribers.pop(topic, None)
