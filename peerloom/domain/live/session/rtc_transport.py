"""Boundary to the RTC media transport (SFU client)."""

from collections.abc import Callable, Sequence
from enum import Enum
from typing import Protocol

from peerloom.domain.live.control.participant_state import ConnectionState

__all__ = ["ConnectionState", "RtcEvent", "RtcTransport", "TrackKind"]


class TrackKind(str, Enum):
    MIC = "mic"
    CAMERA = "cam"
    SCREEN = "screen"

    def __str__(self) -> str:
        return self.value


class RtcEvent(str, Enum):
    """
    Transport callbacks and their arguments.

    - USER_PUBLISHED: (user_id, user_name, kind)
    - USER_UNPUBLISHED: (user_id, kind)
    - USER_JOINED: (user_id, user_name)
    - USER_LEFT: (user_id,)
    - CONNECTION_STATE_CHANGE: (state,) with a `ConnectionState` value
    """

    USER_PUBLISHED = "user-published"
    USER_UNPUBLISHED = "user-unpublished"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    CONNECTION_STATE_CHANGE = "connection-state-change"

    def __str__(self) -> str:
        return self.value


class RtcTransport(Protocol):
    """What the live session client needs from a media transport."""

    async def join(self, *, room: str, identity: str, token: str | None, url: str | None = None) -> None: ...

    async def leave(self) -> None: ...

    async def publish(self, kinds: Sequence[TrackKind]) -> None: ...

    async def unpublish(self, kinds: Sequence[TrackKind]) -> None: ...

    async def set_track_enabled(self, kind: TrackKind, enabled: bool) -> None: ...

    def on(self, event: RtcEvent, callback: Callable[..., None]) -> None: ...
