import asyncio

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import ValidationError

from peerloom.api.v1.dependency import (
    CurrentUser,
    get_control_channel,
    get_live_session_service,
    get_ws_user,
)
from peerloom.api.v1.schemas.base import ApiOut
from peerloom.api.v1.schemas.live_session import (
    BroadcastIn,
    BroadcastOut,
    EndSessionIn,
    EndSessionOut,
    HostStatusOut,
    StartSessionIn,
    StartSessionOut,
)
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.control.control_messages import ControlMessage, decode_message, encode_message
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.shared.api.utils import ApiFailure
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/live")

WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_FORBIDDEN = 4403


def _parse_control_message(data: dict | str | bytes) -> ControlMessage:
    try:
        return decode_message(data)
    except ValidationError as e:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_CONTROL_MESSAGE,
            errmesg=f"Invalid control message: {e.error_count()} error(s)",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from e


@router.post("/start_session")
async def start_session(
    body: StartSessionIn,
    user: CurrentUser,
    service: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[StartSessionOut]:
    """Mark the caller as the live host of the group."""
    result = await service.start_session(body.group_id, user.user_id, body.user_name or user.user_name)

    return ApiOut[StartSessionOut](
        results=StartSessionOut(
            group_id=body.group_id,
            created=result.created,
            removed_rows=result.removed_rows,
            started_at=result.marker.created_at,
        )
    )


@router.post("/end_session")
async def end_session(
    body: EndSessionIn,
    user: CurrentUser,
    service: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[EndSessionOut]:
    """End the session for everyone: clients are told to leave and the group's rows are deleted."""
    result = await service.end_session(body.group_id, user.user_id)

    return ApiOut[EndSessionOut](
        results=EndSessionOut(group_id=result.group_id, removed_rows=result.removed_rows, notified=result.notified)
    )


@router.get("/host_status")
async def host_status(
    user: CurrentUser,
    group_id: str = Query(..., description="Group to check"),
    service: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[HostStatusOut]:
    status = await service.host_status(group_id)
    return ApiOut[HostStatusOut](results=HostStatusOut(**status.model_dump()))


@router.post("/broadcast")
async def broadcast(
    body: BroadcastIn,
    user: CurrentUser,
    service: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[BroadcastOut]:
    """Publish one control message as the caller."""
    message = _parse_control_message(body.message)
    result = await service.publish_control(body.group_id, user.user_id, message)
    return ApiOut[BroadcastOut](results=BroadcastOut(event=result.event, receivers=result.receivers))


@router.websocket("/channel")
async def live_channel(
    websocket: WebSocket,
    group_id: str = Query(...),
    service: LiveSessionService = Depends(get_live_session_service),
    channel: LiveControlChannel = Depends(get_control_channel),
):
    """
    Control channel relay.

    Frames received from the client are authorized and republished with the
    caller as sender; every message on the group topic is forwarded to the
    client, including its own echo. Rejected frames get an error frame back.
    Only the live host and approved students may connect.
    """
    user = await get_ws_user(websocket)
    if user is None:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    try:
        await service.require_participant(group_id, user.user_id)
    except AppError as e:
        logger.warning("Control channel refused for user {} in group {}: {}", user.user_id, group_id, e.errcode)
        failure = ApiFailure(errcode=e.errcode, errmesg=e.errmesg, erresid=e.erresid)
        await websocket.send_json(failure.model_dump())
        await websocket.close(code=WS_CLOSE_FORBIDDEN)
        return

    logger.info("Control channel open for user {} in group {}", user.user_id, group_id)

    async with channel.subscribe(group_id) as messages:

        async def _forward():
            async for message in messages:
                await websocket.send_text(encode_message(message).decode())

        forward = asyncio.create_task(_forward())
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    await service.publish_control(group_id, user.user_id, _parse_control_message(data))
                except AppError as e:
                    failure = ApiFailure(errcode=e.errcode, errmesg=e.errmesg, erresid=e.erresid)
                    await websocket.send_json(failure.model_dump())
        except WebSocketDisconnect:
            logger.info("Control channel closed for user {} in group {}", user.user_id, group_id)
        finally:
            forward.cancel()
            try:
                await forward
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(
                    "Control channel forwarding for user {} in group {} failed: {}", user.user_id, group_id, e
                )
