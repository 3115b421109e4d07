"""Live session domain models."""

from datetime import datetime

from pydantic import BaseModel

from peerloom.domain.live.control.media_policy import Capabilities


class HostStatus(BaseModel):
    group_id: str
    host_active: bool
    host_id: str | None = None
    host_name: str | None = None
    started_at: datetime | None = None


class EndSessionResult(BaseModel):
    group_id: str
    removed_rows: int
    notified: int = 0


class BroadcastResult(BaseModel):
    group_id: str
    event: str
    receivers: int


class MediaToken(BaseModel):
    """RTC access token and the grants it was minted with."""

    group_id: str
    identity: str
    token: str
    url: str | None = None
    is_host: bool = False
    can_publish: bool
    capabilities: Capabilities
