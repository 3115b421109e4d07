"""Beanie ODM schemas and shared enums."""

from .admission_state import AdmissionState
from .admission_status import AdmissionStatus
from .init import init_beanie_odm
from .meeting_request import MeetingRequest

__all__ = [
    "AdmissionState",
    "AdmissionStatus",
    "MeetingRequest",
    "init_beanie_odm",
]
