"""Admission request row operations."""

from beanie.odm.operators.update.general import Set
from beanie.operators import In
from loguru import logger
from pymongo.errors import DuplicateKeyError

from peerloom.domain.utils.idgen import new_request_id
from peerloom.schemas import AdmissionStatus, MeetingRequest
from peerloom.shared.domain.timeutils import utc_now
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseRegistryService
from .registry_models import RegistryRecord


class RequestOperations(BaseRegistryService):
    """Operations on per-user admission request rows."""

    async def get_request(self, group_id: str, user_id: str) -> RegistryRecord | None:
        doc = await MeetingRequest.find_one(
            MeetingRequest.group_id == group_id,
            MeetingRequest.user_id == user_id,
            In(MeetingRequest.status, AdmissionStatus.request_states()),
        )
        return self._to_record(doc) if doc else None

    async def upsert_request(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None,
        status: AdmissionStatus,
    ) -> RegistryRecord:
        """
        Create the user's request row, or overwrite status and timestamp of the existing one.

        One logical row exists per (group, user); re-requests never duplicate it.
        """
        if status == AdmissionStatus.HOST_ACTIVE:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="Host markers are written by start_host_session",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        now = utc_now()
        existing = await self._find_row(group_id, user_id)
        if existing is None:
            doc = MeetingRequest(
                request_id=new_request_id(),
                group_id=group_id,
                user_id=user_id,
                user_name=user_name,
                status=status,
                created_at=now,
                updated_at=now,
            )
            try:
                await doc.insert()
                logger.info("Created {} request for user {} in group {}", status, user_id, group_id)
                await self._notify("INSERT", group_id, doc)
                return self._to_record(doc)
            except DuplicateKeyError:
                logger.warning("Concurrent request insert for user {} in group {}", user_id, group_id)
                existing = await self._find_row(group_id, user_id)
                if existing is None:
                    raise

        if existing.status == AdmissionStatus.HOST_ACTIVE:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="The host does not need an admission request",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        await existing.update(
            Set(
                {
                    MeetingRequest.status: status,
                    MeetingRequest.listen_only: False,
                    MeetingRequest.user_name: user_name or existing.user_name,
                    MeetingRequest.created_at: now,
                    MeetingRequest.updated_at: now,
                }
            )
        )
        existing.status = status
        existing.listen_only = False
        existing.user_name = user_name or existing.user_name
        existing.created_at = now
        existing.updated_at = now

        logger.info("Updated request for user {} in group {} to {}", user_id, group_id, status)
        await self._notify("UPDATE", group_id, existing)
        return self._to_record(existing)

    async def get_request_by_id(self, request_id: str) -> RegistryRecord | None:
        doc = await MeetingRequest.find_one(
            MeetingRequest.request_id == request_id,
            In(MeetingRequest.status, AdmissionStatus.request_states()),
        )
        return self._to_record(doc) if doc else None

    async def _set_status(self, doc: MeetingRequest, status: AdmissionStatus) -> RegistryRecord:
        now = utc_now()
        await doc.update(Set({MeetingRequest.status: status, MeetingRequest.updated_at: now}))
        doc.status = status
        doc.updated_at = now
        await self._notify("UPDATE", doc.group_id, doc)
        return self._to_record(doc)

    async def update_status(self, request_id: str, status: AdmissionStatus) -> RegistryRecord:
        """
        Update a request's status by request id.

        Raises:
            AppError: If the request does not exist or is a host marker
        """
        doc = await MeetingRequest.find_one(MeetingRequest.request_id == request_id)
        if doc is None or doc.status == AdmissionStatus.HOST_ACTIVE:
            raise AppError(
                errcode=AppErrorCode.E_REQUEST_NOT_FOUND,
                errmesg=f"Request not found: {request_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        if doc.status == status:
            return self._to_record(doc)

        return await self._set_status(doc, status)

    async def update_status_for_user(
        self,
        group_id: str,
        user_id: str,
        status: AdmissionStatus,
    ) -> RegistryRecord | None:
        """Update the (group, user) request status; None if the user has no request."""
        doc = await MeetingRequest.find_one(
            MeetingRequest.group_id == group_id,
            MeetingRequest.user_id == user_id,
            In(MeetingRequest.status, AdmissionStatus.request_states()),
        )
        if doc is None:
            return None

        if doc.status == status:
            return self._to_record(doc)

        return await self._set_status(doc, status)

    async def set_listen_only(self, group_id: str, user_id: str, listen_only: bool) -> RegistryRecord | None:
        """Record a speaker demotion (or its reversal) on the user's request row; None if there is none."""
        doc = await MeetingRequest.find_one(
            MeetingRequest.group_id == group_id,
            MeetingRequest.user_id == user_id,
            In(MeetingRequest.status, AdmissionStatus.request_states()),
        )
        if doc is None:
            return None

        if doc.listen_only == listen_only:
            return self._to_record(doc)

        now = utc_now()
        await doc.update(Set({MeetingRequest.listen_only: listen_only, MeetingRequest.updated_at: now}))
        doc.listen_only = listen_only
        doc.updated_at = now
        logger.info("User {} in group {} listen_only={}", user_id, group_id, listen_only)
        await self._notify("UPDATE", group_id, doc)
        return self._to_record(doc)

    async def list_pending(self, group_id: str, exclude_user_id: str | None = None) -> list[RegistryRecord]:
        """Pending requests of a group, oldest first, optionally excluding the host."""
        query = [
            MeetingRequest.group_id == group_id,
            MeetingRequest.status == AdmissionStatus.PENDING,
        ]
        if exclude_user_id:
            query.append(MeetingRequest.user_id != exclude_user_id)

        docs = await MeetingRequest.find(*query).sort("+created_at").to_list()
        return [self._to_record(d) for d in docs]

    async def approve_all(self, group_id: str, exclude_user_id: str | None = None) -> list[RegistryRecord]:
        """Approve every pending request of a group and return the approved rows."""
        approved: list[RegistryRecord] = []
        query = [
            MeetingRequest.group_id == group_id,
            MeetingRequest.status == AdmissionStatus.PENDING,
        ]
        if exclude_user_id:
            query.append(MeetingRequest.user_id != exclude_user_id)

        for doc in await MeetingRequest.find(*query).sort("+created_at").to_list():
            approved.append(await self._set_status(doc, AdmissionStatus.APPROVED))

        logger.info("Approved {} pending requests in group {}", len(approved), group_id)
        return approved

    async def reset_requests(self, group_id: str, exclude_user_id: str | None = None) -> int:
        """Put every student request of the group back to pending. Host markers are untouched."""
        query = [
            MeetingRequest.group_id == group_id,
            In(MeetingRequest.status, [AdmissionStatus.APPROVED, AdmissionStatus.REJECTED]),
        ]
        if exclude_user_id:
            query.append(MeetingRequest.user_id != exclude_user_id)

        count = 0
        for doc in await MeetingRequest.find(*query).to_list():
            await self._set_status(doc, AdmissionStatus.PENDING)
            count += 1

        logger.info("Reset {} requests to pending in group {}", count, group_id)
        return count
