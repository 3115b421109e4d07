from typing import Annotated

import jwt
from fastapi import Depends, Request, WebSocket
from loguru import logger
from pydantic import BaseModel
from starlette.requests import HTTPConnection

from peerloom.app_config import get_app_environ_config
from peerloom.domain.live.admission.admission_domain import AdmissionService
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class User(BaseModel):
    user_id: str
    user_name: str | None = None


def _bad_token(errmesg: str = "Invalid token") -> AppError:
    return AppError(
        errcode=AppErrorCode.E_BAD_TOKEN,
        errmesg=errmesg,
        status_code=HttpStatusCode.UNAUTHORIZED,
    )


def verify_token(token: str | None) -> User:
    """Verify a bearer JWT from the hosted auth provider (HS256)."""
    if not token:
        raise _bad_token("Missing token")

    cfg = get_app_environ_config()
    if not cfg.AUTH_JWT_SECRET:
        raise AppError(
            errcode=AppErrorCode.E_INTERNAL_ERROR,
            errmesg="Token verification is not configured",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )

    try:
        claims = jwt.decode(
            token,
            cfg.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            audience=cfg.AUTH_JWT_AUDIENCE,
        )
    except jwt.PyJWTError as e:
        # Do not log the token itself
        logger.debug("Token rejected: {}", e)
        raise _bad_token() from e

    user_id = claims.get("sub")
    if not user_id:
        raise _bad_token()

    metadata = claims.get("user_metadata") or {}
    user_name = metadata.get("firstName") or metadata.get("full_name") or claims.get("email")
    return User(user_id=user_id, user_name=user_name)


def _bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    return token.strip() if scheme.lower() == "bearer" else None


async def get_current_user(request: Request) -> User:
    user = verify_token(_bearer(request.headers.get("authorization")))
    logger.debug("Authenticated user_id: {}", user.user_id)
    return user


async def get_ws_user(websocket: WebSocket) -> User | None:
    """WebSocket auth through the `token` query parameter. None when invalid."""
    try:
        return verify_token(websocket.query_params.get("token") or _bearer(websocket.headers.get("authorization")))
    except AppError as e:
        logger.info("WebSocket auth failed on {}: {}", websocket.url.path, e.errmesg)
        return None


CurrentUser = Annotated[User, Depends(get_current_user)]


# Services live on app.state, built in the app lifespan


def get_admission_service(conn: HTTPConnection) -> AdmissionService:
    return conn.app.state.admission_service


def get_live_session_service(conn: HTTPConnection) -> LiveSessionService:
    return conn.app.state.live_session_service


def get_attendance_service(conn: HTTPConnection) -> AttendanceService:
    return conn.app.state.attendance_service


def get_control_channel(conn: HTTPConnection) -> LiveControlChannel:
    return conn.app.state.control_channel
