from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from peerloom.domain.live.registry.registry_models import RegistryRecord
from peerloom.schemas import AdmissionState, AdmissionStatus

from .serializers import serialize_utc_datetime


class RequestJoinIn(BaseModel):
    group_id: str
    user_name: str | None = Field(default=None, description="Display name shown in the waiting room")


class GroupIn(BaseModel):
    group_id: str


class RequestActionIn(BaseModel):
    group_id: str
    request_id: str


class RemoveParticipantIn(BaseModel):
    group_id: str
    user_id: str


class RequestOut(BaseModel):
    request_id: str
    user_id: str
    user_name: str | None = None
    status: AdmissionStatus
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, dt: datetime) -> str:
        return serialize_utc_datetime(dt)

    @classmethod
    def from_record(cls, record: RegistryRecord) -> "RequestOut":
        return cls(
            request_id=record.request_id,
            user_id=record.user_id,
            user_name=record.user_name,
            status=record.status,
            created_at=record.created_at,
        )


class AdmissionCheckOut(BaseModel):
    group_id: str
    state: AdmissionState
    host_active: bool
    is_host: bool
    auto_approved: bool = False
    request: RequestOut | None = None


class RequestJoinOut(BaseModel):
    request: RequestOut
    already_pending: bool


class ListPendingOut(BaseModel):
    requests: list[RequestOut]


class WaitingRoomActionOut(BaseModel):
    requests: list[RequestOut]
    broadcasts: int = Field(description="Speaker broadcasts that reached at least one receiver")


class ResetOut(BaseModel):
    updated: int
