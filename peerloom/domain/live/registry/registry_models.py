"""Session registry domain models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from peerloom.schemas import AdmissionStatus

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


class RegistryRecord(BaseModel):
    """A registry row as seen by callers."""

    request_id: str
    group_id: str
    user_id: str
    user_name: str | None = None
    status: AdmissionStatus
    listen_only: bool = False
    created_at: datetime
    updated_at: datetime


class RegistryChange(BaseModel):
    """Row-level change notification published on every registry write."""

    type: ChangeType
    group_id: str
    user_id: str | None = None
    record: RegistryRecord | None = None

    def is_host_marker_insert(self) -> bool:
        return (
            self.type == "INSERT"
            and self.record is not None
            and self.record.status == AdmissionStatus.HOST_ACTIVE
        )


class StartSessionResult(BaseModel):
    marker: RegistryRecord
    created: bool
    removed_rows: int = 0


class SubmitJoinResult(BaseModel):
    record: RegistryRecord
    already_pending: bool = False
