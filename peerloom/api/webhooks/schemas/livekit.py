"""LiveKit webhook event schemas.

Only the events the live classroom reacts to are modelled; everything else is
acknowledged and ignored.

References:
- https://docs.livekit.io/home/server/webhooks/
- livekit.protocol.models (Room, ParticipantInfo, TrackInfo)
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class TrackType(str, Enum):
    AUDIO = "AUDIO"
    VIDEO = "VIDEO"
    DATA = "DATA"


class TrackSource(str, Enum):
    UNKNOWN = "UNKNOWN"
    CAMERA = "CAMERA"
    MICROPHONE = "MICROPHONE"
    SCREEN_SHARE = "SCREEN_SHARE"
    SCREEN_SHARE_AUDIO = "SCREEN_SHARE_AUDIO"


class TrackInfo(BaseModel):
    sid: str = Field(..., description="Track server ID")
    type: TrackType = Field(TrackType.AUDIO, description="Track type (audio/video/data)")
    name: str | None = Field(None, description="Track name")
    muted: bool = Field(False, description="Whether track is muted")
    source: TrackSource = Field(TrackSource.UNKNOWN, description="Track source type")


class ParticipantInfo(BaseModel):
    sid: str = Field(..., description="Participant server ID")
    identity: str = Field(..., description="Participant identity, the user id")
    name: str | None = Field(None, description="Participant display name")
    joined_at: int | None = Field(None, alias="joinedAt", description="Join timestamp (seconds)")


class Room(BaseModel):
    """A LiveKit room; its name is the group id."""

    sid: str = Field(..., description="Room server ID")
    name: str = Field(..., description="Room name")
    num_participants: int | None = Field(None, alias="numParticipants", description="Current participant count")


class RoomFinishedEvent(BaseModel):
    event: Literal["room_finished"] = "room_finished"
    id: str = Field(..., description="Event UUID")
    created_at: int = Field(..., alias="createdAt", description="Event timestamp (seconds)")
    room: Room


class ParticipantJoinedEvent(BaseModel):
    event: Literal["participant_joined"] = "participant_joined"
    id: str = Field(..., description="Event UUID")
    created_at: int = Field(..., alias="createdAt", description="Event timestamp (seconds)")
    room: Room
    participant: ParticipantInfo


class ParticipantLeftEvent(BaseModel):
    event: Literal["participant_left"] = "participant_left"
    id: str = Field(..., description="Event UUID")
    created_at: int = Field(..., alias="createdAt", description="Event timestamp (seconds)")
    room: Room
    participant: ParticipantInfo


class TrackPublishedEvent(BaseModel):
    """First publish of a participant marks them present."""

    event: Literal["track_published"] = "track_published"
    id: str = Field(..., description="Event UUID")
    created_at: int = Field(..., alias="createdAt", description="Event timestamp (seconds)")
    room: Room
    participant: ParticipantInfo
    track: TrackInfo
