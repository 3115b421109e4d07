"""Live session service - host lifecycle, control relay and RTC tokens."""

from peerloom.app_config import AppEnvironConfig
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.control.control_messages import ControlMessage
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.registry.registry_domain import SessionRegistryService
from peerloom.domain.live.registry.registry_models import StartSessionResult
from peerloom.services.integrations.livekit_service import LivekitService

from ._control import ControlOperations
from ._lifecycle import LifecycleOperations
from ._media import MediaOperations
from .session_models import BroadcastResult, EndSessionResult, HostStatus, MediaToken


class LiveSessionService:
    """Server side of a group's live session."""

    def __init__(
        self,
        registry: SessionRegistryService,
        channel: LiveControlChannel | None = None,
        attendance: AttendanceService | None = None,
        livekit: LivekitService | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        kwargs = dict(registry=registry, channel=channel, attendance=attendance, livekit=livekit, cfg=cfg)
        self.registry = registry
        self._lifecycle = LifecycleOperations(**kwargs)
        self._control = ControlOperations(**kwargs)
        self._media = MediaOperations(**kwargs)

    # ==================== LIFECYCLE ====================

    async def start_session(self, group_id: str, host_id: str, host_name: str | None = None) -> StartSessionResult:
        """Mark the host live, clearing rows of a stale session.

        Raises AppError if another host is live.
        """
        return await self._lifecycle.start_session(group_id, host_id, host_name)

    async def end_session(self, group_id: str, host_id: str) -> EndSessionResult:
        """Broadcast end-meeting-for-all and delete the group's rows.

        Raises AppError if the caller is not the live host.
        """
        return await self._lifecycle.end_session(group_id, host_id)

    async def host_status(self, group_id: str) -> HostStatus:
        return await self._lifecycle.host_status(group_id)

    # ==================== CONTROL ====================

    async def require_participant(self, group_id: str, user_id: str) -> bool:
        """True for the live host, False for an approved student. Raises AppError otherwise."""
        return await self._control.require_participant(group_id, user_id)

    async def authorize_control(self, group_id: str, sender_id: str, message: ControlMessage) -> ControlMessage:
        return await self._control.authorize_control(group_id, sender_id, message)

    async def publish_control(self, group_id: str, sender_id: str, message: ControlMessage) -> BroadcastResult:
        """Publish a control message as `sender_id`. Raises AppError if not allowed."""
        return await self._control.publish_control(group_id, sender_id, message)

    # ==================== MEDIA ====================

    async def mint_token(self, group_id: str, user_id: str, user_name: str | None = None) -> MediaToken:
        return await self._media.mint_token(group_id, user_id, user_name)
