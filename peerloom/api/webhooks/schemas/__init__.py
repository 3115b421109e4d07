"""Webhook schemas for external providers."""

from peerloom.api.webhooks.schemas.livekit import (
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    RoomFinishedEvent,
    TrackPublishedEvent,
)

__all__ = [
    "ParticipantJoinedEvent",
    "ParticipantLeftEvent",
    "RoomFinishedEvent",
    "TrackPublishedEvent",
]
