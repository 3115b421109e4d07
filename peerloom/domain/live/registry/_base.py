"""Base service for session registry operations."""

from datetime import timedelta

from loguru import logger
from pymongo.errors import PyMongoError

from peerloom.app_config import AppEnvironConfig, get_app_environ_config
from peerloom.schemas import AdmissionStatus, MeetingRequest
from peerloom.shared.domain.timeutils import utc_now
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .change_feed import RegistryChangeFeed
from .registry_models import ChangeType, RegistryChange, RegistryRecord


class BaseRegistryService:
    """Base service with shared registry helpers."""

    def __init__(
        self,
        feed: RegistryChangeFeed | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self.feed = feed
        self.cfg = cfg or get_app_environ_config()

    @staticmethod
    def _to_record(doc: MeetingRequest) -> RegistryRecord:
        return RegistryRecord(**doc.model_dump(exclude={"id", "revision_id"}))

    def _is_stale(self, doc: MeetingRequest) -> bool:
        cutoff = utc_now() - timedelta(seconds=self.cfg.HOST_MARKER_STALE_SECONDS)
        return doc.created_at < cutoff

    @staticmethod
    def _unavailable(group_id: str, e: Exception) -> AppError:
        logger.error("Registry read failed for group {}: {}", group_id, e)
        return AppError(
            errcode=AppErrorCode.E_REGISTRY_UNAVAILABLE,
            errmesg="Session registry is unavailable",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )

    async def _find_latest_marker(self, group_id: str) -> MeetingRequest | None:
        """
        Newest host marker for a group, stale or not.

        Args:
            group_id: Group identifier

        Returns:
            MeetingRequest document if found, None otherwise
        """
        try:
            return await MeetingRequest.find_one(
                MeetingRequest.group_id == group_id,
                MeetingRequest.status == AdmissionStatus.HOST_ACTIVE,
                sort=[("created_at", -1)],
            )
        except PyMongoError as e:
            raise self._unavailable(group_id, e) from e

    async def _find_row(self, group_id: str, user_id: str) -> MeetingRequest | None:
        try:
            return await MeetingRequest.find_one(
                MeetingRequest.group_id == group_id,
                MeetingRequest.user_id == user_id,
            )
        except PyMongoError as e:
            raise self._unavailable(group_id, e) from e

    async def _notify(
        self,
        change_type: ChangeType,
        group_id: str,
        doc: MeetingRequest | None = None,
        user_id: str | None = None,
    ) -> None:
        if self.feed is None:
            return

        record = self._to_record(doc) if doc is not None else None
        await self.feed.publish(
            RegistryChange(
                type=change_type,
                group_id=group_id,
                user_id=user_id or (record.user_id if record else None),
                record=record,
            )
        )
        logger.debug("registry {} group={} user={}", change_type, group_id, user_id or (record and record.user_id))
