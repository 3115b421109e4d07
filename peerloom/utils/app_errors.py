"""Application error type raised from domain and API code.

AppError carries an error code, a human readable message, the HTTP status the
API layer should answer with, and the call site that created it so handlers can
log where the error originated.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_BAD_TOKEN = "E_BAD_TOKEN"

    # Session registry / admission
    E_NOT_HOST = "E_NOT_HOST"
    E_HOST_NOT_ACTIVE = "E_HOST_NOT_ACTIVE"
    E_REQUEST_NOT_FOUND = "E_REQUEST_NOT_FOUND"
    E_REGISTRY_UNAVAILABLE = "E_REGISTRY_UNAVAILABLE"
    E_INVALID_ADMISSION_TRANSITION = "E_INVALID_ADMISSION_TRANSITION"

    # Live control channel
    E_INVALID_CONTROL_MESSAGE = "E_INVALID_CONTROL_MESSAGE"
    E_CONTROL_NOT_ALLOWED = "E_CONTROL_NOT_ALLOWED"

    # RTC provider
    E_RTC_NOT_CONFIGURED = "E_RTC_NOT_CONFIGURED"

    # Webhooks
    E_WEBHOOK_INVALID_JSON = "E_WEBHOOK_INVALID_JSON"
    E_WEBHOOK_MISSING_EVENT_TYPE = "E_WEBHOOK_MISSING_EVENT_TYPE"
    E_WEBHOOK_VALIDATION_ERROR = "E_WEBHOOK_VALIDATION_ERROR"
    E_WEBHOOK_BAD_SIGNATURE = "E_WEBHOOK_BAD_SIGNATURE"
    E_WEBHOOK_ERROR = "E_WEBHOOK_ERROR"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: HttpStatusCode | int = HttpStatusCode.INTERNAL_SERVER_ERROR,
    ):
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        caller_frame = inspect.stack()[1]
        module = inspect.getmodule(caller_frame.frame)
        module_name = (
            module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
        )
        self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

        super().__init__(f"{self.errcode}: {errmesg}")


__all__ = ["AppError", "AppErrorCode", "HttpStatusCode"]
