from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from loguru import logger

from peerloom.api.v1.dependency import CurrentUser, get_attendance_service, get_live_session_service
from peerloom.api.v1.schemas.attendance import (
    AttendanceEntryOut,
    ListAttendanceOut,
    RecordAttendanceIn,
    RecordAttendanceOut,
)
from peerloom.api.v1.schemas.base import ApiOut
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.domain.live.session.session_models import HostStatus
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/attendance")


async def _require_host(sessions: LiveSessionService, group_id: str, user_id: str) -> HostStatus:
    status = await sessions.host_status(group_id)
    if not status.host_active or status.host_id != user_id:
        raise AppError(
            errcode=AppErrorCode.E_NOT_HOST,
            errmesg="Only the live host can access attendance",
            status_code=HttpStatusCode.FORBIDDEN,
        )
    return status


@router.post("/record")
async def record_attendance(
    body: RecordAttendanceIn,
    user: CurrentUser,
    attendance: AttendanceService = Depends(get_attendance_service),
    sessions: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[RecordAttendanceOut]:
    """Host client reports the first publish it observed from a participant."""
    status = await _require_host(sessions, body.group_id, user.user_id)
    created = attendance.record(body.group_id, body.user_id, body.user_name, host_id=status.host_id)

    return ApiOut[RecordAttendanceOut](
        results=RecordAttendanceOut(created=created, participant_count=attendance.participant_count(body.group_id))
    )


@router.get("/list")
async def list_attendance(
    user: CurrentUser,
    group_id: str = Query(...),
    attendance: AttendanceService = Depends(get_attendance_service),
    sessions: LiveSessionService = Depends(get_live_session_service),
) -> ApiOut[ListAttendanceOut]:
    await _require_host(sessions, group_id, user.user_id)
    entries = [
        AttendanceEntryOut(
            user_id=entry.user_id,
            display_name=entry.display_name,
            join_time=entry.join_time,
            join_date=entry.join_date,
        )
        for entry in attendance.entries(group_id)
    ]
    return ApiOut[ListAttendanceOut](
        results=ListAttendanceOut(entries=entries, participant_count=attendance.participant_count(group_id))
    )


@router.get("/export")
async def export_attendance(
    user: CurrentUser,
    group_id: str = Query(...),
    attendance: AttendanceService = Depends(get_attendance_service),
    sessions: LiveSessionService = Depends(get_live_session_service),
) -> Response:
    """Download attendance as `attendance-YYYY-MM-DD.csv`."""
    status = await _require_host(sessions, group_id, user.user_id)
    filename, content = attendance.export(group_id, status.host_name or user.user_name)
    logger.info("Host {} exported attendance of group {}", user.user_id, group_id)

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
