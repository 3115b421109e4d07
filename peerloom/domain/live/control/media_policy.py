"""
Media authority policy.

Pure decisions over role, promotion set and `SessionPolicy`. Nothing here
touches tracks or the channel; callers act on the returned decision.
"""

from collections.abc import Set
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .session_policy import SessionPolicy


class MediaKind(str, Enum):
    MIC = "mic"
    CAMERA = "cam"

    def __str__(self) -> str:
        return self.value


class DenyReason(str, Enum):
    MIC_LOCKED = "mic_locked"
    CAMERA_LOCKED = "camera_locked"
    LISTEN_ONLY = "listen_only"

    def __str__(self) -> str:
        return self.value


class MediaDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    enabled: bool
    reason: DenyReason | None = None
    # Ask the host for permission with a `media-request`
    request_media: bool = False
    notice: str | None = None


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_transmit_audio: bool
    can_transmit_video: bool
    can_share_screen: bool
    can_draw_whiteboard: bool


class ScreenShareAction(str, Enum):
    START = "start"
    STOP = "stop"
    REQUEST = "request"
    ALREADY_REQUESTED = "already_requested"
    DENY_PRESENTER_BUSY = "deny_presenter_busy"

    def __str__(self) -> str:
        return self.value


_LOCK_NOTICES = {
    MediaKind.MIC: "Microphone is locked by host",
    MediaKind.CAMERA: "Camera is locked by host",
}


def _is_locked(kind: MediaKind, policy: SessionPolicy) -> bool:
    return policy.mic_locked if kind == MediaKind.MIC else policy.camera_locked


def decide_media_toggle(
    kind: MediaKind,
    *,
    enable: bool,
    user_id: str,
    is_host: bool,
    promoted: Set[str],
    policy: SessionPolicy,
) -> MediaDecision:
    """
    Decide whether a participant may switch a local medium on or off.

    Rules in priority order:
    1. The host is exempt from every lock.
    2. A locked medium cannot be enabled by anyone else; a `media-request` is due.
    3. Under listen-only, only promoted speakers may enable mic or camera.
    4. Anything else is permitted.

    Switching a medium off is always permitted.
    """
    if is_host or not enable:
        return MediaDecision(allowed=True, enabled=enable)

    if _is_locked(kind, policy):
        return MediaDecision(
            allowed=False,
            enabled=False,
            reason=DenyReason.MIC_LOCKED if kind == MediaKind.MIC else DenyReason.CAMERA_LOCKED,
            request_media=True,
            notice=_LOCK_NOTICES[kind],
        )

    if policy.force_listen_only and user_id not in promoted:
        return MediaDecision(
            allowed=False,
            enabled=False,
            reason=DenyReason.LISTEN_ONLY,
            request_media=True,
            notice="You are in listen-only mode. Ask host for permission to speak.",
        )

    return MediaDecision(allowed=True, enabled=True)


def compute_capabilities(
    *,
    user_id: str,
    is_host: bool,
    promoted: Set[str],
    can_present: bool,
    policy: SessionPolicy,
) -> Capabilities:
    if is_host:
        return Capabilities(
            can_transmit_audio=True,
            can_transmit_video=True,
            can_share_screen=True,
            can_draw_whiteboard=True,
        )

    speaker = not policy.force_listen_only or user_id in promoted
    return Capabilities(
        can_transmit_audio=speaker and not policy.mic_locked,
        can_transmit_video=speaker and not policy.camera_locked,
        can_share_screen=can_present,
        can_draw_whiteboard=can_present,
    )


def decide_screen_share(
    *,
    user_id: str,
    is_host: bool,
    can_present: bool,
    is_sharing: bool,
    presenter: str | None,
    has_pending_request: bool,
) -> ScreenShareAction:
    """Resolve a local screen-share button press against the single-presenter rule."""
    if presenter is not None and presenter != user_id:
        return ScreenShareAction.DENY_PRESENTER_BUSY

    if not is_host and not can_present:
        return ScreenShareAction.ALREADY_REQUESTED if has_pending_request else ScreenShareAction.REQUEST

    return ScreenShareAction.STOP if is_sharing else ScreenShareAction.START
