"""Host-side waiting room operations."""

import contextlib
from collections.abc import AsyncIterator

from loguru import logger

from peerloom.domain.live.control.control_messages import ControlEvent, make_message
from peerloom.domain.live.registry.registry_models import RegistryRecord
from peerloom.schemas import AdmissionStatus
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseAdmissionService
from .admission_models import WaitingRoomAction
from .state_puller import StatePuller


class WaitingRoomOperations(BaseAdmissionService):
    """Approve, reject, remove and reset admission requests as the host."""

    async def _broadcast_speaker(self, event: ControlEvent, group_id: str, host_id: str, record: RegistryRecord) -> int:
        if self.channel is None:
            return 0

        message = make_message(event, host_id, user_id=record.user_id, user_name=record.user_name)
        try:
            return await self.channel.publish(group_id, message)
        except Exception as e:
            # Registry already holds the decision; the student's watcher still picks it up
            logger.warning("Failed to broadcast {} for user {} in group {}: {}", event, record.user_id, group_id, e)
            return 0

    async def _get_group_request(self, group_id: str, request_id: str) -> RegistryRecord:
        record = await self.registry.get_request_by_id(request_id)
        if record is None or record.group_id != group_id:
            raise AppError(
                errcode=AppErrorCode.E_REQUEST_NOT_FOUND,
                errmesg=f"Request not found: {request_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return record

    async def list_pending(self, group_id: str, host_id: str) -> list[RegistryRecord]:
        await self._require_host(group_id, host_id)
        return await self.registry.list_pending(group_id, exclude_user_id=host_id)

    async def approve(self, group_id: str, host_id: str, request_id: str) -> WaitingRoomAction:
        """Approve one request and promote the student to speaker."""
        await self._require_host(group_id, host_id)
        await self._get_group_request(group_id, request_id)

        record = await self.registry.update_status(request_id, AdmissionStatus.APPROVED)
        sent = await self._broadcast_speaker(ControlEvent.PROMOTE_SPEAKER, group_id, host_id, record)
        logger.info("Host {} approved user {} in group {}", host_id, record.user_id, group_id)
        return WaitingRoomAction(group_id=group_id, records=[record], broadcasts=sent)

    async def approve_all(self, group_id: str, host_id: str) -> WaitingRoomAction:
        await self._require_host(group_id, host_id)

        records = await self.registry.approve_all(group_id, exclude_user_id=host_id)
        sent = 0
        for record in records:
            sent += await self._broadcast_speaker(ControlEvent.PROMOTE_SPEAKER, group_id, host_id, record)
        return WaitingRoomAction(group_id=group_id, records=records, broadcasts=sent)

    async def reject(self, group_id: str, host_id: str, request_id: str) -> WaitingRoomAction:
        await self._require_host(group_id, host_id)
        await self._get_group_request(group_id, request_id)

        record = await self.registry.update_status(request_id, AdmissionStatus.REJECTED)
        logger.info("Host {} rejected user {} in group {}", host_id, record.user_id, group_id)
        return WaitingRoomAction(group_id=group_id, records=[record])

    async def remove(self, group_id: str, host_id: str, user_id: str) -> WaitingRoomAction:
        """Reject an admitted participant and revoke their speaker rights."""
        await self._require_host(group_id, host_id)
        if user_id == host_id:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="The host cannot remove themselves",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        record = await self.registry.update_status_for_user(group_id, user_id, AdmissionStatus.REJECTED)
        if record is None:
            raise AppError(
                errcode=AppErrorCode.E_REQUEST_NOT_FOUND,
                errmesg=f"User {user_id} has no request in group {group_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        sent = await self._broadcast_speaker(ControlEvent.DEMOTE_SPEAKER, group_id, host_id, record)
        logger.info("Host {} removed user {} from group {}", host_id, user_id, group_id)
        return WaitingRoomAction(group_id=group_id, records=[record], broadcasts=sent)

    async def reset(self, group_id: str, host_id: str) -> int:
        """Send every admitted or rejected student back to the waiting room."""
        await self._require_host(group_id, host_id)
        return await self.registry.reset_requests(group_id, exclude_user_id=host_id)

    async def watch_pending(self, group_id: str, host_id: str) -> AsyncIterator[list[RegistryRecord]]:
        """
        Yield the pending list now and again whenever it changes.

        Refreshes on registry changes and every WAITING_ROOM_POLL_INTERVAL_SECONDS.
        Ends once the caller is no longer the live host.
        """
        await self._require_host(group_id, host_id)

        async def fetch() -> list[RegistryRecord] | None:
            marker = await self.registry.get_active_marker(group_id)
            if marker is None or marker.user_id != host_id:
                return None
            return await self.registry.list_pending(group_id, exclude_user_id=host_id)

        pending = await self.registry.list_pending(group_id, exclude_user_id=host_id)
        yield pending

        puller: StatePuller[list[RegistryRecord] | None, list[RegistryRecord] | None] = StatePuller(
            initial=pending,
            fetch=fetch,
            reduce=lambda _, observed: observed,
            interval=self.cfg.WAITING_ROOM_POLL_INTERVAL_SECONDS,
            wakeups=(lambda: self.feed.subscribe(group_id)) if self.feed is not None else None,
            is_terminal=lambda state: state is None,
            name=f"waiting-room:{group_id}",
        )
        async with contextlib.aclosing(puller.stream()) as changes:
            async for state in changes:
                yield state
        logger.info("Waiting room watch of group {} ended, {} is no longer host", group_id, host_id)
