"""Base service for admission operations."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from peerloom.app_config import AppEnvironConfig, get_app_environ_config
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.registry.change_feed import RegistryChangeFeed
from peerloom.domain.live.registry.registry_domain import SessionRegistryService
from peerloom.domain.live.registry.registry_models import RegistryRecord
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

T = TypeVar("T")


class BaseAdmissionService:
    """Base service with shared admission helpers."""

    def __init__(
        self,
        registry: SessionRegistryService,
        channel: LiveControlChannel | None = None,
        feed: RegistryChangeFeed | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self.registry = registry
        self.channel = channel
        self.feed = feed if feed is not None else registry.feed
        self.cfg = cfg or get_app_environ_config()

    async def _read_with_retry(
        self,
        read: Callable[[], Awaitable[T]],
        *,
        backoff: float,
        default: T,
        what: str,
    ) -> T:
        """
        Run a registry read, retrying with a fixed backoff.

        After the last failed attempt `default` is returned: a read that keeps
        failing means "not available yet", never an error for the user.
        """
        attempts = max(1, self.cfg.REGISTRY_READ_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                return await read()
            except Exception as e:
                logger.warning("{} read failed (attempt {}/{}): {}", what, attempt, attempts, e)
                if attempt < attempts:
                    await asyncio.sleep(backoff)

        return default

    async def _require_host(self, group_id: str, host_id: str) -> RegistryRecord:
        """
        Return the live host marker of the group, checking that `host_id` owns it.

        Raises:
            AppError: If no host is live, or the caller is not the host
        """
        marker = await self.registry.get_active_marker(group_id)
        if marker is None:
            raise AppError(
                errcode=AppErrorCode.E_HOST_NOT_ACTIVE,
                errmesg=f"No live session for group {group_id}",
                status_code=HttpStatusCode.CONFLICT,
            )

        if marker.user_id != host_id:
            raise AppError(
                errcode=AppErrorCode.E_NOT_HOST,
                errmesg="Only the host can manage the waiting room",
                status_code=HttpStatusCode.FORBIDDEN,
            )

        return marker
