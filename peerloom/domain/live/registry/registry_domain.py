"""Session registry service - host markers and admission requests with Beanie ODM."""

from peerloom.app_config import AppEnvironConfig
from peerloom.schemas import AdmissionStatus

from ._markers import HostMarkerOperations
from ._requests import RequestOperations
from .change_feed import RegistryChangeFeed
from .registry_models import RegistryRecord, StartSessionResult


class SessionRegistryService:
    """Registry of host lifecycle markers and per-user admission requests."""

    def __init__(
        self,
        feed: RegistryChangeFeed | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self.feed = feed
        self._markers = HostMarkerOperations(feed=feed, cfg=cfg)
        self._requests = RequestOperations(feed=feed, cfg=cfg)

    # ==================== HOST MARKER ====================

    async def start_host_session(
        self,
        group_id: str,
        host_id: str,
        host_name: str | None = None,
    ) -> StartSessionResult:
        """Mark the host live for the group, clearing rows left by a stale session.

        Raises AppError if another host holds a fresh marker.
        """
        return await self._markers.start_host_session(group_id=group_id, host_id=host_id, host_name=host_name)

    async def get_active_marker(self, group_id: str) -> RegistryRecord | None:
        """Return the non-stale host marker of the group, if any."""
        return await self._markers.get_active_marker(group_id=group_id)

    async def is_host_active(self, group_id: str) -> bool:
        return await self._markers.get_active_marker(group_id=group_id) is not None

    async def end_host_session(self, group_id: str, host_id: str) -> int:
        """Delete every row of the group. Returns the number of rows removed.

        Raises AppError if a fresh marker belongs to another user.
        """
        return await self._markers.end_host_session(group_id=group_id, host_id=host_id)

    async def list_group_rows(self, group_id: str) -> list[RegistryRecord]:
        return await self._markers.list_group_rows(group_id=group_id)

    # ==================== REQUESTS ====================

    async def get_request(self, group_id: str, user_id: str) -> RegistryRecord | None:
        """Return the user's admission request (never the host marker)."""
        return await self._requests.get_request(group_id=group_id, user_id=user_id)

    async def get_request_by_id(self, request_id: str) -> RegistryRecord | None:
        return await self._requests.get_request_by_id(request_id=request_id)

    async def upsert_request(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None,
        status: AdmissionStatus,
    ) -> RegistryRecord:
        """Create or overwrite the user's single request row."""
        return await self._requests.upsert_request(
            group_id=group_id,
            user_id=user_id,
            user_name=user_name,
            status=status,
        )

    async def update_status(self, request_id: str, status: AdmissionStatus) -> RegistryRecord:
        """Update a request by id. Raises AppError if not found."""
        return await self._requests.update_status(request_id=request_id, status=status)

    async def update_status_for_user(
        self,
        group_id: str,
        user_id: str,
        status: AdmissionStatus,
    ) -> RegistryRecord | None:
        return await self._requests.update_status_for_user(group_id=group_id, user_id=user_id, status=status)

    async def set_listen_only(self, group_id: str, user_id: str, listen_only: bool) -> RegistryRecord | None:
        return await self._requests.set_listen_only(group_id=group_id, user_id=user_id, listen_only=listen_only)

    async def list_pending(self, group_id: str, exclude_user_id: str | None = None) -> list[RegistryRecord]:
        """Pending requests ordered by creation time, oldest first."""
        return await self._requests.list_pending(group_id=group_id, exclude_user_id=exclude_user_id)

    async def approve_all(self, group_id: str, exclude_user_id: str | None = None) -> list[RegistryRecord]:
        return await self._requests.approve_all(group_id=group_id, exclude_user_id=exclude_user_id)

    async def reset_requests(self, group_id: str, exclude_user_id: str | None = None) -> int:
        """Reset approved/rejected requests to pending, leaving the host marker alone."""
        return await self._requests.reset_requests(group_id=group_id, exclude_user_id=exclude_user_id)
