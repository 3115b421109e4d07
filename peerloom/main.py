import time
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from peerloom.api.v1.errors import app_error_handler
from peerloom.app_config import get_app_environ_config
from peerloom.domain.live.admission.admission_domain import AdmissionService
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.registry.change_feed import RegistryChangeFeed
from peerloom.domain.live.registry.registry_domain import SessionRegistryService
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.schemas.init_schemas import init_schema
from peerloom.shared.api.utils import E_INVALID_PARAMS, api_failure, init_logger, load_routes
from peerloom.shared.broadcast import Broadcaster, InMemoryBroadcaster, RedisBroadcaster
from peerloom.shared.config import config
from peerloom.shared.storage.redis import get_redis_manager
from peerloom.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(E_INVALID_PARAMS, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())


def build_broadcaster(server: FastAPI) -> Broadcaster:
    """Redis pub/sub, or an in-process broadcaster for single-worker runs."""
    if config.get_bool("LIVE_BROADCAST_IN_MEMORY"):
        logger.warning("Using in-memory broadcaster: control messages stay inside this process")
        return InMemoryBroadcaster()

    redis_client = server.state.redis_manager.get_cache_client(config.get_redis_major_label())
    return RedisBroadcaster(redis_client)


def init_services(server: FastAPI, broadcaster: Broadcaster) -> None:
    cfg = get_app_environ_config()

    feed = RegistryChangeFeed(broadcaster)
    registry = SessionRegistryService(feed=feed, cfg=cfg)
    channel = LiveControlChannel(broadcaster)
    attendance = AttendanceService()

    server.state.control_channel = channel
    server.state.attendance_service = attendance
    server.state.admission_service = AdmissionService(registry, channel=channel, feed=feed, cfg=cfg)
    server.state.live_session_service = LiveSessionService(registry, channel=channel, attendance=attendance, cfg=cfg)


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    server.state.redis_manager = get_redis_manager()
    init_services(server, build_broadcaster(server))

    # Initialize MongoDB schemas and Beanie ODM
    await init_schema()

    load_routes(server, "/api/v1")

    yield

    logger.info("Application shutdown...")

    await server.state.redis_manager.close_all()


app = FastAPI(
    version="1.0",
    title="PeerLoom Live API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

DEBUG = config.get_bool("DEBUG")

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=get_app_environ_config().API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore


def build_granian_kwargs():
    kwargs = {
        "interface": "asgi",
        "address": config.get("API_HOST") or "0.0.0.0",
        "port": int(config.get("API_PORT") or 8000),
        "workers": int(config.get("API_WORKERS") or 1),
        "reload": DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("peerloom.main:app", **granian_kwargs).serve()
