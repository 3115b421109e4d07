"""Base service for live session operations."""

from peerloom.app_config import AppEnvironConfig, get_app_environ_config
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.registry.registry_domain import SessionRegistryService
from peerloom.domain.live.registry.registry_models import RegistryRecord
from peerloom.schemas import AdmissionStatus
from peerloom.services.integrations.livekit_service import LivekitService, livekit_service
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class BaseSessionService:
    """Base service with shared collaborators."""

    def __init__(
        self,
        registry: SessionRegistryService,
        channel: LiveControlChannel | None = None,
        attendance: AttendanceService | None = None,
        livekit: LivekitService | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self.registry = registry
        self.channel = channel
        self.attendance = attendance
        self.livekit = livekit or livekit_service
        self.cfg = cfg or get_app_environ_config()

    async def _require_participant(
        self,
        group_id: str,
        user_id: str,
    ) -> tuple[RegistryRecord, RegistryRecord | None]:
        """
        Check that the user is the live host or an approved student.

        Returns:
            The host marker and the user's request row (None for the host)

        Raises:
            AppError: If the host is not live or the user was not admitted
        """
        marker = await self.registry.get_active_marker(group_id)
        if marker is None:
            raise AppError(
                errcode=AppErrorCode.E_HOST_NOT_ACTIVE,
                errmesg="The host has not started the session yet",
                status_code=HttpStatusCode.CONFLICT,
            )

        if marker.user_id == user_id:
            return marker, None

        request = await self.registry.get_request(group_id, user_id)
        if request is None or request.status != AdmissionStatus.APPROVED:
            raise AppError(
                errcode=AppErrorCode.E_CONTROL_NOT_ALLOWED,
                errmesg="You have not been admitted to this session",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        return marker, request
