from pydantic import BaseModel

from peerloom.domain.live.control.media_policy import Capabilities


class MediaTokenIn(BaseModel):
    group_id: str


class MediaTokenOut(BaseModel):
    token: str
    url: str | None = None
    identity: str
    is_host: bool
    can_publish: bool
    capabilities: Capabilities
