"""Session registry ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator
from pymongo import ASCENDING, IndexModel

from .admission_status import AdmissionStatus
from .schema_utils import parse_mongo_datetime


class MeetingRequest(Document):
    """One registry row per (group, user).

    The host's row carries status HOST_ACTIVE and is the session lifecycle
    marker. Student rows carry PENDING/APPROVED/REJECTED admission requests.
    """

    request_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    group_id: str
    user_id: str
    user_name: str | None = None

    status: AdmissionStatus = AdmissionStatus.PENDING
    listen_only: bool = False

    # Timestamps
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    class Settings:
        name = "meeting_request"
        indexes = [
            IndexModel(
                [("group_id", ASCENDING), ("user_id", ASCENDING)],
                name="group_user_unique",
                unique=True,
            ),
            IndexModel(
                [("group_id", ASCENDING), ("status", ASCENDING), ("created_at", ASCENDING)],
                name="group_status_created",
            ),
        ]
