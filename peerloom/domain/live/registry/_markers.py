"""Host lifecycle marker operations."""

from loguru import logger
from pymongo.errors import DuplicateKeyError

from peerloom.domain.utils.idgen import new_request_id
from peerloom.schemas import AdmissionStatus, MeetingRequest
from peerloom.shared.domain.timeutils import utc_now
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseRegistryService
from .registry_models import RegistryRecord, StartSessionResult


class HostMarkerOperations(BaseRegistryService):
    """Operations on the `host_active` lifecycle marker."""

    async def get_active_marker(self, group_id: str) -> RegistryRecord | None:
        """Return the group's host marker, or None if it is missing or stale."""
        marker = await self._find_latest_marker(group_id)
        if marker is None:
            return None

        if self._is_stale(marker):
            logger.debug("Host marker for group {} is stale (created_at={})", group_id, marker.created_at)
            return None

        return self._to_record(marker)

    async def start_host_session(
        self,
        group_id: str,
        host_id: str,
        host_name: str | None = None,
    ) -> StartSessionResult:
        """
        Mark the host as live for a group.

        A fresh marker owned by the same host is reused. A missing or stale
        marker clears every row of the group before a new marker is inserted.

        Raises:
            AppError: If another user holds a fresh marker for the group
        """
        marker = await self._find_latest_marker(group_id)
        if marker is not None and not self._is_stale(marker):
            if marker.user_id != host_id:
                raise AppError(
                    errcode=AppErrorCode.E_NOT_HOST,
                    errmesg=f"Group {group_id} already has an active host",
                    status_code=HttpStatusCode.CONFLICT,
                )
            logger.info("Host {} already active for group {}, reusing marker", host_id, group_id)
            return StartSessionResult(marker=self._to_record(marker), created=False)

        removed = await self.clear_group(group_id)

        now = utc_now()
        doc = MeetingRequest(
            request_id=new_request_id(),
            group_id=group_id,
            user_id=host_id,
            user_name=host_name,
            status=AdmissionStatus.HOST_ACTIVE,
            created_at=now,
            updated_at=now,
        )
        try:
            await doc.insert()
        except DuplicateKeyError:
            # Concurrent start by the same host
            existing = await self._find_row(group_id, host_id)
            if existing is None or existing.status != AdmissionStatus.HOST_ACTIVE:
                raise
            logger.warning("Concurrent host start for group {}, keeping existing marker", group_id)
            return StartSessionResult(marker=self._to_record(existing), created=False, removed_rows=removed)

        logger.info("Host {} started session for group {} (cleared {} rows)", host_id, group_id, removed)
        await self._notify("INSERT", group_id, doc)

        return StartSessionResult(marker=self._to_record(doc), created=True, removed_rows=removed)

    async def clear_group(self, group_id: str) -> int:
        """Delete every registry row of a group."""
        result = await MeetingRequest.find(MeetingRequest.group_id == group_id).delete()
        deleted = result.deleted_count if result else 0
        if deleted:
            await self._notify("DELETE", group_id)
        return deleted

    async def end_host_session(self, group_id: str, host_id: str) -> int:
        """
        End the session for everyone by deleting all rows of the group.

        Raises:
            AppError: If a fresh marker exists and belongs to another user
        """
        marker = await self._find_latest_marker(group_id)
        if marker is not None and not self._is_stale(marker) and marker.user_id != host_id:
            raise AppError(
                errcode=AppErrorCode.E_NOT_HOST,
                errmesg="Only the host can end the session",
                status_code=HttpStatusCode.FORBIDDEN,
            )

        deleted = await self.clear_group(group_id)
        logger.info("Host {} ended session for group {} ({} rows removed)", host_id, group_id, deleted)
        return deleted

    async def list_group_rows(self, group_id: str) -> list[RegistryRecord]:
        docs = await MeetingRequest.find(MeetingRequest.group_id == group_id).sort("+created_at").to_list()
        return [self._to_record(d) for d in docs]
