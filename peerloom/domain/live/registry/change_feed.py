"""Registry change feed: the push half of push+poll registry watching."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from pydantic import ValidationError

from peerloom.app_config import get_app_environ_config
from peerloom.shared.broadcast import Broadcaster

from .registry_models import RegistryChange


class RegistryChangeFeed:
    """Publishes and streams `RegistryChange` notifications per group."""

    def __init__(self, broadcaster: Broadcaster, prefix: str | None = None):
        self._broadcaster = broadcaster
        self._prefix = prefix or get_app_environ_config().REGISTRY_FEED_PREFIX

    def topic(self, group_id: str) -> str:
        return f"{self._prefix}:{group_id}"

    async def publish(self, change: RegistryChange) -> None:
        try:
            await self._broadcaster.publish(self.topic(change.group_id), change.model_dump_json().encode())
        except Exception as e:
            # Polling covers a lost notification.
            logger.warning("Failed to publish registry change group={} type={}: {}", change.group_id, change.type, e)

    @asynccontextmanager
    async def subscribe(self, group_id: str) -> AsyncIterator[AsyncIterator[RegistryChange]]:
        async with self._broadcaster.subscribe(self.topic(group_id)) as deliveries:

            async def _changes() -> AsyncIterator[RegistryChange]:
                async for data in deliveries:
                    try:
                        yield RegistryChange.model_validate_json(data)
                    except ValidationError as e:
                        logger.warning("Dropping malformed registry change on {}: {}", self.topic(group_id), e)

            yield _changes()
