"""Server-side relay of control messages onto a group's channel."""

from loguru import logger

from peerloom.domain.live.control.control_messages import (
    HOST_ONLY_EVENTS,
    ControlEvent,
    ControlMessage,
    DemoteSpeaker,
    HandLower,
    PromoteSpeaker,
)
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseSessionService
from .session_models import BroadcastResult


class ControlOperations(BaseSessionService):
    """Authenticate, authorize and publish control messages for a sender."""

    async def require_participant(self, group_id: str, user_id: str) -> bool:
        """
        Check the user may join the group's control channel.

        Returns:
            True for the live host, False for an approved student

        Raises:
            AppError: If the host is not live or the user was not admitted
        """
        _, request = await self._require_participant(group_id, user_id)
        return request is None

    async def authorize_control(self, group_id: str, sender_id: str, message: ControlMessage) -> ControlMessage:
        """
        Stamp the message with the authenticated sender and check it may send it.

        Raises:
            AppError: If the sender is not in the session, or a host-only
                event comes from someone other than the live host
        """
        message.payload.sender_id = sender_id
        event = ControlEvent(message.event)

        is_host = await self.require_participant(group_id, sender_id)
        needs_host = event in HOST_ONLY_EVENTS or (
            isinstance(message, HandLower) and message.payload.user_id != sender_id
        )
        if needs_host and not is_host:
            raise AppError(
                errcode=AppErrorCode.E_CONTROL_NOT_ALLOWED,
                errmesg=f"Only the host can send {event}",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        return message

    async def publish_control(self, group_id: str, sender_id: str, message: ControlMessage) -> BroadcastResult:
        """Authorize then publish. Raises AppError if not allowed or no channel is configured."""
        if self.channel is None:
            raise AppError(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg="Live control channel is not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        message = await self.authorize_control(group_id, sender_id, message)
        if isinstance(message, (PromoteSpeaker, DemoteSpeaker)):
            await self.registry.set_listen_only(group_id, message.payload.user_id, isinstance(message, DemoteSpeaker))

        receivers = await self.channel.publish(group_id, message)
        logger.info("Relayed {} from {} to group {} ({} receivers)", message.event, sender_id, group_id, receivers)
        return BroadcastResult(group_id=group_id, event=str(message.event), receivers=receivers)
