"""Per-group live control channel over a `Broadcaster`."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from pydantic import ValidationError

from peerloom.app_config import get_app_environ_config
from peerloom.shared.broadcast import Broadcaster

from .control_messages import ControlMessage, decode_message, encode_message


class LiveControlChannel:
    """
    Publish and receive typed control messages for a group.

    Delivery is at-most-once: nothing is persisted, and subscribers only see
    messages published after they subscribed.
    """

    def __init__(self, broadcaster: Broadcaster, prefix: str | None = None):
        self._broadcaster = broadcaster
        self._prefix = prefix or get_app_environ_config().CONTROL_CHANNEL_PREFIX

    def topic(self, group_id: str) -> str:
        return f"{self._prefix}:{group_id}"

    async def publish(self, group_id: str, message: ControlMessage) -> int:
        """Returns the number of subscribers that received the message."""
        receivers = await self._broadcaster.publish(self.topic(group_id), encode_message(message))
        logger.debug(
            "control {} from {} to group {} receivers={}", message.event, message.sender_id, group_id, receivers
        )
        return receivers

    @asynccontextmanager
    async def subscribe(self, group_id: str) -> AsyncIterator[AsyncIterator[ControlMessage]]:
        async with self._broadcaster.subscribe(self.topic(group_id)) as deliveries:

            async def _messages() -> AsyncIterator[ControlMessage]:
                async for data in deliveries:
                    try:
                        yield decode_message(data)
                    except ValidationError as e:
                        logger.warning("Dropping malformed control message on {}: {}", self.topic(group_id), e)

            yield _messages()
