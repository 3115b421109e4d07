from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_serializer

from .serializers import serialize_optional_utc_datetime


class StartSessionIn(BaseModel):
    group_id: str = Field(description="Group whose live session the host starts")
    user_name: str | None = Field(default=None, description="Display name override for the host")


class StartSessionOut(BaseModel):
    group_id: str
    created: bool = Field(description="False when the host's marker was already live")
    removed_rows: int = Field(description="Rows of a previous, stale session that were deleted")
    started_at: datetime | None = None

    @field_serializer("started_at")
    def serialize_started_at(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)


class EndSessionIn(BaseModel):
    group_id: str


class EndSessionOut(BaseModel):
    group_id: str
    removed_rows: int
    notified: int


class HostStatusOut(BaseModel):
    group_id: str
    host_active: bool
    host_id: str | None = None
    host_name: str | None = None
    started_at: datetime | None = None

    @field_serializer("started_at")
    def serialize_started_at(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)


class BroadcastIn(BaseModel):
    group_id: str
    message: dict[str, Any] = Field(description='Control envelope: {"event": ..., "payload": {...}}')


class BroadcastOut(BaseModel):
    event: str
    receivers: int
