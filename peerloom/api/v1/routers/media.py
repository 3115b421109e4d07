from fastapi import APIRouter, Depends

from peerloom.api.v1.dependency import CurrentUser, get_live_session_service
from peerloom.api.v1.schemas.base import ApiOut
from peerloom.api.v1.schemas.media import MediaTokenIn, MediaTokenOut
from peerloom.domain.live.session.live_session_domain import LiveSessionService

router = APIRouter(prefix="/media")


@router.post("/token")
async def media_token(
    body: MediaTokenIn,
    user: CurrentUser,
    service: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[MediaTokenOut]:
    """RTC access token for the host or an approved participant.

    The publish grant follows the media policy: listen-only participants get a
    subscribe-only token.
    """
    token = await service.mint_token(body.group_id, user.user_id, user.user_name)

    return ApiOut[MediaTokenOut](
        results=MediaTokenOut(
            token=token.token,
            url=token.url,
            identity=token.identity,
            is_host=token.is_host,
            can_publish=token.can_publish,
            capabilities=token.capabilities,
        )
    )
