from contextlib import aclosing

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from loguru import logger

from peerloom.api.v1.dependency import CurrentUser, get_admission_service, get_ws_user
from peerloom.api.v1.schemas.admission import (
    AdmissionCheckOut,
    GroupIn,
    ListPendingOut,
    RemoveParticipantIn,
    RequestActionIn,
    RequestJoinIn,
    RequestJoinOut,
    RequestOut,
    ResetOut,
    WaitingRoomActionOut,
)
from peerloom.api.v1.schemas.base import ApiOut
from peerloom.domain.live.admission.admission_domain import AdmissionService
from peerloom.domain.live.admission.admission_models import WaitingRoomAction
from peerloom.schemas import AdmissionState
from peerloom.shared.api.utils import ApiFailure
from peerloom.utils.app_errors import AppError

router = APIRouter(prefix="/admission")

WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_FORBIDDEN = 4403


def _action_out(action: WaitingRoomAction) -> ApiOut[WaitingRoomActionOut]:
    return ApiOut[WaitingRoomActionOut](
        results=WaitingRoomActionOut(
            requests=[RequestOut.from_record(r) for r in action.records],
            broadcasts=action.broadcasts,
        )
    )


@router.get("/check")
async def check(
    user: CurrentUser,
    group_id: str = Query(..., description="Group the caller wants to enter"),
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[AdmissionCheckOut]:
    """Resolve the caller's admission state. May auto-approve when the host is live."""
    decision = await service.resolve(group_id, user.user_id, user.user_name)

    return ApiOut[AdmissionCheckOut](
        results=AdmissionCheckOut(
            group_id=group_id,
            state=decision.state,
            host_active=decision.host_active,
            is_host=decision.is_host,
            auto_approved=decision.auto_approved,
            request=RequestOut.from_record(decision.request) if decision.request else None,
        )
    )


@router.post("/request_join")
async def request_join(
    body: RequestJoinIn,
    user: CurrentUser,
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[RequestJoinOut]:
    result = await service.submit_join_request(body.group_id, user.user_id, body.user_name or user.user_name)
    return ApiOut[RequestJoinOut](
        results=RequestJoinOut(request=RequestOut.from_record(result.record), already_pending=result.already_pending)
    )


@router.get("/pending")
async def list_pending(
    user: CurrentUser,
    group_id: str = Query(...),
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[ListPendingOut]:
    """Host only: pending requests, oldest first."""
    records = await service.list_pending(group_id, user.user_id)
    return ApiOut[ListPendingOut](results=ListPendingOut(requests=[RequestOut.from_record(r) for r in records]))


@router.post("/approve")
async def approve(
    body: RequestActionIn,
    user: CurrentUser,
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[WaitingRoomActionOut]:
    return _action_out(await service.approve(body.group_id, user.user_id, body.request_id))


@router.post("/approve_all")
async def approve_all(
    body: GroupIn,
    user: CurrentUser,
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[WaitingRoomActionOut]:
    return _action_out(await service.approve_all(body.group_id, user.user_id))


@router.post("/reject")
async def reject(
    body: RequestActionIn,
    user: CurrentUser,
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[WaitingRoomActionOut]:
    return _action_out(await service.reject(body.group_id, user.user_id, body.request_id))


@router.post("/remove")
async def remove(
    body: RemoveParticipantIn,
    user: CurrentUser,
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[WaitingRoomActionOut]:
    """Host only: reject an admitted participant and revoke their speaker rights."""
    return _action_out(await service.remove(body.group_id, user.user_id, body.user_id))


@router.post("/reset")
async def reset(
    body: GroupIn,
    user: CurrentUser,
    service: AdmissionService = Depends(get_admission_service),
) -> ApiOut[ResetOut]:
    """Host only: send every participant back to pending."""
    updated = await service.reset(body.group_id, user.user_id)
    return ApiOut[ResetOut](results=ResetOut(updated=updated))


@router.websocket("/watch")
async def watch(
    websocket: WebSocket,
    group_id: str = Query(...),
    service: AdmissionService = Depends(get_admission_service),
):
    """Stream admission updates as JSON frames until the caller is approved."""
    user = await get_ws_user(websocket)
    if user is None:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    try:
        async with aclosing(service.watch(group_id, user.user_id, user.user_name)) as updates:
            async for update in updates:
                await websocket.send_json(update.model_dump(mode="json"))
                if update.state == AdmissionState.APPROVED:
                    break
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("Admission watch closed by user {} in group {}", user.user_id, group_id)


@router.websocket("/pending/watch")
async def watch_pending(
    websocket: WebSocket,
    group_id: str = Query(...),
    service: AdmissionService = Depends(get_admission_service),
):
    """Host only: push the pending list whenever it changes."""
    user = await get_ws_user(websocket)
    if user is None:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    try:
        async with aclosing(service.watch_pending(group_id, user.user_id)) as lists:
            async for records in lists:
                out = ListPendingOut(requests=[RequestOut.from_record(r) for r in records])
                await websocket.send_json(ApiOut[ListPendingOut](results=out).model_dump(mode="json"))
        await websocket.close()
    except AppError as e:
        failure = ApiFailure(errcode=e.errcode, errmesg=e.errmesg, erresid=e.erresid)
        await websocket.send_json(failure.model_dump())
        await websocket.close(code=WS_CLOSE_FORBIDDEN)
    except WebSocketDisconnect:
        logger.info("Waiting room watch closed by host {} in group {}", user.user_id, group_id)
