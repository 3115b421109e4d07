"""Host session lifecycle: start, end and status."""

from loguru import logger

from peerloom.domain.live.control.control_messages import ControlEvent, make_message
from peerloom.domain.live.registry.registry_models import StartSessionResult
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseSessionService
from .session_models import EndSessionResult, HostStatus


class LifecycleOperations(BaseSessionService):
    """Start and end a group's live session."""

    async def start_session(self, group_id: str, host_id: str, host_name: str | None = None) -> StartSessionResult:
        """
        Mark the host live. A new marker also starts a fresh attendance list.

        Raises:
            AppError: If another host is live for the group
        """
        result = await self.registry.start_host_session(group_id, host_id, host_name)
        if result.created and self.attendance is not None:
            self.attendance.reset(group_id)
        return result

    async def end_session(self, group_id: str, host_id: str) -> EndSessionResult:
        """
        End the session for everyone.

        Connected clients are told to leave first, then every registry row of
        the group is removed and the RTC room is closed.

        Raises:
            AppError: If a live marker belongs to another user
        """
        marker = await self.registry.get_active_marker(group_id)
        if marker is not None and marker.user_id != host_id:
            raise AppError(
                errcode=AppErrorCode.E_NOT_HOST,
                errmesg="Only the host can end the session",
                status_code=HttpStatusCode.FORBIDDEN,
            )

        notified = 0
        if self.channel is not None:
            try:
                notified = await self.channel.publish(group_id, make_message(ControlEvent.END_MEETING_FOR_ALL, host_id))
            except Exception as e:
                logger.warning("Failed to broadcast end of session for group {}: {}", group_id, e)

        removed = await self.registry.end_host_session(group_id, host_id)

        try:
            await self.livekit.delete_room(group_id)
        except Exception as e:
            # Clients leave on the broadcast; the room empties on its own
            logger.warning("Failed to close RTC room for group {}: {}", group_id, e)

        logger.info("Host {} ended group {} session, notified {} clients", host_id, group_id, notified)
        return EndSessionResult(group_id=group_id, removed_rows=removed, notified=notified)

    async def host_status(self, group_id: str) -> HostStatus:
        marker = await self.registry.get_active_marker(group_id)
        if marker is None:
            return HostStatus(group_id=group_id, host_active=False)

        return HostStatus(
            group_id=group_id,
            host_active=True,
            host_id=marker.user_id,
            host_name=marker.user_name,
            started_at=marker.created_at,
        )
