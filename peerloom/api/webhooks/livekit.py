"""LiveKit webhook endpoint.

Event types handled:
- track_published: first publish of a participant is recorded as attendance
- participant_joined / participant_left: logged
- room_finished: logged

Other events are acknowledged and ignored. Outside demo mode every request
must carry a valid LiveKit-signed `Authorization` header.
"""

from typing import Any

import orjson
from fastapi import APIRouter, Depends, Header, Request
from loguru import logger
from pydantic import ValidationError

from peerloom.api.v1.dependency import get_attendance_service, get_live_session_service
from peerloom.api.webhooks.schemas import (
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    RoomFinishedEvent,
    TrackPublishedEvent,
)
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.services.integrations.livekit_service import LivekitService, livekit_service
from peerloom.shared.api.utils import ApiFailure, ApiSuccess, api_failure
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


class LiveKitWebhookSuccess(ApiSuccess):
    results: dict[str, Any]  # type: ignore[assignment]


def get_livekit_service() -> LivekitService:
    return livekit_service


async def handle_track_published(
    event: TrackPublishedEvent,
    attendance: AttendanceService,
    sessions: LiveSessionService,
) -> dict[str, Any]:
    group_id = event.room.name
    participant = event.participant
    logger.info(
        "Track published in {}: {} ({}) by {}",
        group_id,
        event.track.sid,
        event.track.source.value,
        participant.identity,
    )

    status = await sessions.host_status(group_id)
    created = attendance.record(group_id, participant.identity, participant.name, host_id=status.host_id)

    return {"handled": "track_published", "participant": participant.identity, "recorded": created}


async def handle_participant_joined(event: ParticipantJoinedEvent) -> dict[str, Any]:
    logger.info("Participant {} joined room {}", event.participant.identity, event.room.name)
    return {"handled": "participant_joined", "participant": event.participant.identity}


async def handle_participant_left(event: ParticipantLeftEvent) -> dict[str, Any]:
    logger.info("Participant {} left room {}", event.participant.identity, event.room.name)
    return {"handled": "participant_left", "participant": event.participant.identity}


async def handle_room_finished(event: RoomFinishedEvent) -> dict[str, Any]:
    logger.info("Room {} finished (sid={})", event.room.name, event.room.sid)
    return {"handled": "room_finished", "room_name": event.room.name}


@router.post("/livekit", response_model=LiveKitWebhookSuccess | ApiFailure)
async def livekit_webhook(
    request: Request,
    authorization: str | None = Header(None),
    attendance: AttendanceService = Depends(get_attendance_service),
    sessions: LiveSessionService = Depends(get_live_session_service),
    livekit: LivekitService = Depends(get_livekit_service),
) -> LiveKitWebhookSuccess | ApiFailure:
    """Receive and process LiveKit webhook events.

    Raises AppError (400) for a body that is not UTF-8 text and (401) when
    the signature does not verify.
    """
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.error("Webhook body is not UTF-8: {}", exc)
        raise AppError(
            errcode=AppErrorCode.E_WEBHOOK_INVALID_JSON,
            errmesg="Webhook body must be UTF-8 encoded JSON",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from exc
    livekit.verify_webhook(text, authorization)

    try:
        event_data = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        logger.error("Invalid JSON in webhook body: {}", exc)
        return api_failure(errcode=AppErrorCode.E_WEBHOOK_INVALID_JSON, errmesg=f"Invalid JSON: {exc!s}")

    event_type = event_data.get("event") if isinstance(event_data, dict) else None
    if not event_type:
        logger.error("Missing 'event' field in webhook payload")
        return api_failure(errcode=AppErrorCode.E_WEBHOOK_MISSING_EVENT_TYPE, errmesg="Missing 'event' field")

    logger.info("LiveKit webhook: {}", event_type)

    try:
        if event_type == "track_published":
            result = await handle_track_published(TrackPublishedEvent(**event_data), attendance, sessions)
        elif event_type == "participant_joined":
            result = await handle_participant_joined(ParticipantJoinedEvent(**event_data))
        elif event_type == "participant_left":
            result = await handle_participant_left(ParticipantLeftEvent(**event_data))
        elif event_type == "room_finished":
            result = await handle_room_finished(RoomFinishedEvent(**event_data))
        else:
            logger.debug("Ignoring LiveKit webhook event {}", event_type)
            result = {"ignored": True, "event": event_type}
    except ValidationError as exc:
        logger.error("Failed to parse {} event: {}", event_type, exc)
        return api_failure(
            errcode=AppErrorCode.E_WEBHOOK_VALIDATION_ERROR,
            errmesg=f"Failed to parse event: {exc!s}",
        )

    return LiveKitWebhookSuccess(results=result)
