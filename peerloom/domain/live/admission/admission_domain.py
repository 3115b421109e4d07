"""Admission service - resolution, watching and the host waiting room."""

from collections.abc import AsyncIterator

from peerloom.app_config import AppEnvironConfig
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.registry.change_feed import RegistryChangeFeed
from peerloom.domain.live.registry.registry_domain import SessionRegistryService
from peerloom.domain.live.registry.registry_models import RegistryRecord, SubmitJoinResult

from ._waiting_room import WaitingRoomOperations
from ._watch import WatchOperations
from .admission_models import AdmissionDecision, AdmissionSnapshot, AdmissionUpdate, WaitingRoomAction


class AdmissionService:
    """Admission of connecting users into a group's live session."""

    def __init__(
        self,
        registry: SessionRegistryService,
        channel: LiveControlChannel | None = None,
        feed: RegistryChangeFeed | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self.registry = registry
        self._watch = WatchOperations(registry=registry, channel=channel, feed=feed, cfg=cfg)
        self._waiting_room = WaitingRoomOperations(registry=registry, channel=channel, feed=feed, cfg=cfg)

    # ==================== CONNECTING USER ====================

    async def snapshot(self, group_id: str, user_id: str) -> AdmissionSnapshot:
        return await self._watch.snapshot(group_id, user_id)

    async def resolve(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None = None,
        *,
        backoff: float | None = None,
        auto_join: bool | None = None,
    ) -> AdmissionDecision:
        """Resolve the user's admission state, auto-approving when the policy allows."""
        return await self._watch.resolve(group_id, user_id, user_name, backoff=backoff, auto_join=auto_join)

    def watch(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None = None,
        *,
        auto_join: bool | None = None,
    ) -> AsyncIterator[AdmissionUpdate]:
        """Stream admission updates until APPROVED."""
        return self._watch.watch(group_id, user_id, user_name, auto_join=auto_join)

    async def submit_join_request(self, group_id: str, user_id: str, user_name: str | None = None) -> SubmitJoinResult:
        """Create or re-submit a pending request. Raises AppError if the host is not live."""
        return await self._watch.submit_join_request(group_id, user_id, user_name)

    # ==================== HOST WAITING ROOM ====================

    async def list_pending(self, group_id: str, host_id: str) -> list[RegistryRecord]:
        return await self._waiting_room.list_pending(group_id, host_id)

    async def approve(self, group_id: str, host_id: str, request_id: str) -> WaitingRoomAction:
        return await self._waiting_room.approve(group_id, host_id, request_id)

    async def approve_all(self, group_id: str, host_id: str) -> WaitingRoomAction:
        return await self._waiting_room.approve_all(group_id, host_id)

    async def reject(self, group_id: str, host_id: str, request_id: str) -> WaitingRoomAction:
        return await self._waiting_room.reject(group_id, host_id, request_id)

    async def remove(self, group_id: str, host_id: str, user_id: str) -> WaitingRoomAction:
        return await self._waiting_room.remove(group_id, host_id, user_id)

    def watch_pending(self, group_id: str, host_id: str) -> AsyncIterator[list[RegistryRecord]]:
        """Stream the pending list as it changes, until the caller stops being the live host."""
        return self._waiting_room.watch_pending(group_id, host_id)

    async def reset(self, group_id: str, host_id: str) -> int:
        """Reset approved and rejected requests to pending. The host marker is untouched."""
        return await self._waiting_room.reset(group_id, host_id)
