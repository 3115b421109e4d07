"""RTC access tokens with publish grants derived from the media policy."""

from loguru import logger

from peerloom.domain.live.control.media_policy import compute_capabilities
from peerloom.domain.live.control.session_policy import SessionPolicy

from ._base import BaseSessionService
from .session_models import MediaToken


class MediaOperations(BaseSessionService):
    """Mint RTC tokens for admitted participants."""

    async def mint_token(self, group_id: str, user_id: str, user_name: str | None = None) -> MediaToken:
        """
        Mint a token for the host or an approved student.

        Approved students are speakers unless the host demoted them, in which
        case the token only subscribes.

        Raises:
            AppError: If the host is not live or the user was not admitted
        """
        _, request = await self._require_participant(group_id, user_id)
        is_host = request is None
        listen_only = request is not None and request.listen_only

        promoted: set[str] = set() if is_host or listen_only else {user_id}
        capabilities = compute_capabilities(
            user_id=user_id,
            is_host=is_host,
            promoted=promoted,
            can_present=is_host,
            policy=SessionPolicy(force_listen_only=listen_only),
        )
        can_publish = capabilities.can_transmit_audio or capabilities.can_transmit_video

        token = self.livekit.create_access_token(
            identity=user_id,
            room=group_id,
            name=user_name,
            can_publish=can_publish,
            room_admin=is_host,
        )
        logger.info(
            "Minted RTC token for user {} in group {} (host={}, publish={})", user_id, group_id, is_host, can_publish
        )

        return MediaToken(
            group_id=group_id,
            identity=user_id,
            token=token,
            url=self.cfg.LIVEKIT_URL,
            is_host=is_host,
            can_publish=can_publish,
            capabilities=capabilities,
        )
