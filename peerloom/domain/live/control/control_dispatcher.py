"""
Exhaustive dispatcher applying control messages to a `ParticipantState`.

Handlers mutate the state and describe local side effects (track changes,
leaving the session) in a `DispatchResult`; executing those effects against the
RTC transport is the caller's job. Every `ControlEvent` must have a handler;
a missing one fails at import.
"""

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger
from pydantic import BaseModel, ConfigDict

from .control_messages import (
    HOST_ONLY_EVENTS,
    CamChange,
    ControlEvent,
    ControlMessage,
    DemoteSpeaker,
    DisableCameras,
    EnableCameras,
    EndMeetingForAll,
    ForceStopScreenshare,
    HandLower,
    HandRaise,
    MediaRequest,
    MuteAll,
    PromoteSpeaker,
    ScreenShareApproved,
    ScreenShareRejected,
    ScreenShareRequest,
    ScreenShareStarted,
    ScreenShareStopped,
    Spotlight,
    StudentMicChange,
    UnmuteAll,
    WhiteboardBatch,
    WhiteboardClear,
    WhiteboardToggle,
    encode_message,
)
from .participant_state import ParticipantState


class LocalEffect(str, Enum):
    FORCE_MIC_OFF = "force_mic_off"
    FORCE_CAMERA_OFF = "force_camera_off"
    PUBLISH_TRACKS = "publish_tracks"
    UNPUBLISH_TRACKS = "unpublish_tracks"
    STOP_SCREEN_SHARE = "stop_screen_share"
    LEAVE_SESSION = "leave_session"

    def __str__(self) -> str:
        return self.value


class IgnoreReason(str, Enum):
    SELF_ECHO = "self_echo"
    DUPLICATE = "duplicate"
    NOT_HOST = "not_host"
    SENDER_MISMATCH = "sender_mismatch"
    PRESENTER_BUSY = "presenter_busy"
    WHITEBOARD_INACTIVE = "whiteboard_inactive"

    def __str__(self) -> str:
        return self.value


class Notice(BaseModel):
    """Transient, auto-dismissing user notification."""

    model_config = ConfigDict(frozen=True)

    message: str
    kind: str = "info"


@dataclass
class DispatchResult:
    event: ControlEvent
    applied: bool = True
    ignored: IgnoreReason | None = None
    effects: list[LocalEffect] = field(default_factory=list)
    notices: list[Notice] = field(default_factory=list)

    def ignore(self, reason: IgnoreReason) -> "DispatchResult":
        self.applied = False
        self.ignored = reason
        return self

    def notify(self, message: str, kind: str = "info") -> None:
        self.notices.append(Notice(message=message, kind=kind))


Handler = Callable[["ControlDispatcher", ControlMessage, DispatchResult], None]

_HANDLERS: dict[ControlEvent, Handler] = {}


def _handles(event: ControlEvent):
    def decorator(func: Handler) -> Handler:
        _HANDLERS[event] = func
        return func

    return decorator


_USER_ASSERTING = (HandRaise, ScreenShareStarted, ScreenShareStopped, StudentMicChange, CamChange, MediaRequest)


def _asserted_user(message: ControlMessage) -> str | None:
    """User id a participant-originated message speaks for."""
    if isinstance(message, ScreenShareRequest):
        return message.payload.student_id
    if isinstance(message, _USER_ASSERTING):
        return message.payload.user_id
    return None


class ControlDispatcher:
    """Applies control messages received on the channel to one participant."""

    RECENT_LIMIT = 512

    def __init__(self, state: ParticipantState):
        self.state = state
        self._recent: OrderedDict[bytes, None] = OrderedDict()

    def is_authorized(self, message: ControlMessage) -> bool:
        """Host-only events must come from the host; participants speak only for themselves."""
        sender = message.sender_id
        event = ControlEvent(message.event)
        if sender == self.state.host_id:
            return True

        if event in HOST_ONLY_EVENTS:
            return False

        if isinstance(message, HandLower):
            return message.payload.user_id == sender

        asserted = _asserted_user(message)
        return asserted is None or asserted == sender

    def _seen(self, message: ControlMessage) -> bool:
        key = encode_message(message)
        if key in self._recent:
            return True
        self._recent[key] = None
        if len(self._recent) > self.RECENT_LIMIT:
            self._recent.popitem(last=False)
        return False

    def dispatch(self, message: ControlMessage) -> DispatchResult:
        event = ControlEvent(message.event)
        result = DispatchResult(event=event)

        if message.sender_id and message.sender_id == self.state.user_id:
            return result.ignore(IgnoreReason.SELF_ECHO)

        if not self.is_authorized(message):
            logger.warning(
                "Ignoring {} from {} in session hosted by {}", event, message.sender_id, self.state.host_id
            )
            return result.ignore(
                IgnoreReason.NOT_HOST if event in HOST_ONLY_EVENTS else IgnoreReason.SENDER_MISMATCH
            )

        if self._seen(message):
            return result.ignore(IgnoreReason.DUPLICATE)

        _HANDLERS[event](self, message, result)
        logger.debug("{} from {} applied={} effects={}", event, message.sender_id, result.applied, result.effects)
        return result

    # ==================== LOCKS ====================

    @_handles(ControlEvent.MUTE_ALL)
    def _on_mute_all(self, message: MuteAll, result: DispatchResult) -> None:
        state = self.state
        state.policy = state.policy.with_mic_lock(message.payload.locked, message.payload.hard_lock)
        if state.is_host:
            return
        if state.is_mic_on:
            state.is_mic_on = False
            result.effects.append(LocalEffect.FORCE_MIC_OFF)
        result.notify("Host muted all participants", "mute")

    @_handles(ControlEvent.UNMUTE_ALL)
    def _on_unmute_all(self, message: UnmuteAll, result: DispatchResult) -> None:
        self.state.policy = self.state.policy.with_mic_lock(False, False)
        if not self.state.is_host:
            result.notify("You can now unmute", "mic")

    @_handles(ControlEvent.DISABLE_CAMERAS)
    def _on_disable_cameras(self, message: DisableCameras, result: DispatchResult) -> None:
        state = self.state
        state.policy = state.policy.with_camera_lock(message.payload.locked, message.payload.hard_lock)
        if state.is_host:
            return
        if state.is_camera_on:
            state.is_camera_on = False
            result.effects.append(LocalEffect.FORCE_CAMERA_OFF)
        result.notify("Host disabled all cameras", "camera")

    @_handles(ControlEvent.ENABLE_CAMERAS)
    def _on_enable_cameras(self, message: EnableCameras, result: DispatchResult) -> None:
        self.state.policy = self.state.policy.with_camera_lock(False, False)
        if not self.state.is_host:
            result.notify("You can now enable camera", "camera")

    # ==================== SPOTLIGHT & HANDS ====================

    @_handles(ControlEvent.SPOTLIGHT)
    def _on_spotlight(self, message: Spotlight, result: DispatchResult) -> None:
        payload = message.payload
        if payload.active and payload.spotlight_user_id:
            self.state.spotlight.override(payload.spotlight_user_id)
            self.state.spotlight_immune = True
        else:
            self.state.spotlight.override(None)
            self.state.spotlight_immune = False

    @_handles(ControlEvent.HAND_RAISE)
    def _on_hand_raise(self, message: HandRaise, result: DispatchResult) -> None:
        payload = message.payload
        if payload.action == "lower":
            self.state.raised_hands.lower_hand(payload.user_id, message.sent_at)
            return
        if self.state.raised_hands.raise_hand(payload.user_id, payload.user_name, message.sent_at):
            result.notify(f"{payload.user_name or payload.user_id} raised hand", "hand")

    @_handles(ControlEvent.HAND_LOWER)
    def _on_hand_lower(self, message: HandLower, result: DispatchResult) -> None:
        lowered = self.state.raised_hands.lower_hand(message.payload.user_id, message.sent_at)
        if lowered and message.payload.user_id == self.state.user_id:
            result.notify("Host lowered your hand", "hand")

    # ==================== SCREEN SHARE ====================

    @_handles(ControlEvent.SCREEN_SHARE_REQUEST)
    def _on_screen_share_request(self, message: ScreenShareRequest, result: DispatchResult) -> None:
        payload = message.payload
        if not self.state.is_host or payload.student_id in self.state.screen_share_requests:
            return
        self.state.screen_share_requests[payload.student_id] = payload
        result.notify(f"{payload.student_name or payload.student_id} wants to share screen")

    @_handles(ControlEvent.SCREEN_SHARE_APPROVED)
    def _on_screen_share_approved(self, message: ScreenShareApproved, result: DispatchResult) -> None:
        state = self.state
        if state.is_host or message.payload.student_id != state.user_id:
            return
        state.screen_share_approved = True
        state.can_present = True
        result.notify("Your screen share has been approved! You can now share your screen.", "check")

    @_handles(ControlEvent.SCREEN_SHARE_REJECTED)
    def _on_screen_share_rejected(self, message: ScreenShareRejected, result: DispatchResult) -> None:
        state = self.state
        if state.is_host or message.payload.student_id != state.user_id:
            return
        state.screen_share_approved = False
        result.notify("Your screen share request was rejected")

    @_handles(ControlEvent.SCREEN_SHARE_STARTED)
    def _on_screen_share_started(self, message: ScreenShareStarted, result: DispatchResult) -> None:
        user_id = message.payload.user_id
        if self.state.presenter.acquire(user_id):
            return
        if message.sender_id == self.state.host_id:
            self.state.presenter.override(user_id)
            return
        logger.warning("{} claims the presenter slot held by {}", user_id, self.state.presenter.holder)
        result.ignore(IgnoreReason.PRESENTER_BUSY)

    @_handles(ControlEvent.SCREEN_SHARE_STOPPED)
    def _on_screen_share_stopped(self, message: ScreenShareStopped, result: DispatchResult) -> None:
        self.state.presenter.release(message.payload.user_id)

    @_handles(ControlEvent.FORCE_STOP_SCREENSHARE)
    def _on_force_stop(self, message: ForceStopScreenshare, result: DispatchResult) -> None:
        state = self.state
        target = message.payload.user_id
        if state.presenter.holder == target:
            state.presenter.override(None)

        if target == state.user_id and state.is_screen_sharing:
            state.is_screen_sharing = False
            result.effects.append(LocalEffect.STOP_SCREEN_SHARE)
            result.notify("Host stopped your screen share")

    # ==================== SPEAKERS ====================

    @_handles(ControlEvent.PROMOTE_SPEAKER)
    def _on_promote(self, message: PromoteSpeaker, result: DispatchResult) -> None:
        state = self.state
        user_id = message.payload.user_id
        state.promoted.add(user_id)
        if user_id != state.user_id or state.is_host:
            return
        newly_promoted = not state.can_present or state.policy.force_listen_only
        state.can_present = True
        state.policy = state.policy.with_listen_only(False)
        result.effects.append(LocalEffect.PUBLISH_TRACKS)
        if newly_promoted:
            result.notify("You have been promoted to presenter", "check")

    @_handles(ControlEvent.DEMOTE_SPEAKER)
    def _on_demote(self, message: DemoteSpeaker, result: DispatchResult) -> None:
        state = self.state
        user_id = message.payload.user_id
        state.promoted.discard(user_id)
        if user_id != state.user_id or state.is_host:
            return
        state.can_present = False
        state.is_mic_on = False
        state.is_camera_on = False
        state.policy = state.policy.with_listen_only(True)
        result.effects.append(LocalEffect.UNPUBLISH_TRACKS)
        result.notify("Presenter access revoked")

    # ==================== WHITEBOARD ====================

    @_handles(ControlEvent.WHITEBOARD_TOGGLE)
    def _on_whiteboard_toggle(self, message: WhiteboardToggle, result: DispatchResult) -> None:
        if message.payload.active:
            self.state.whiteboard_active = True
            self.state.whiteboard_commands = list(message.payload.drawing_commands)
        else:
            self.state.whiteboard_active = False

    @_handles(ControlEvent.WHITEBOARD_BATCH)
    def _on_whiteboard_batch(self, message: WhiteboardBatch, result: DispatchResult) -> None:
        if not self.state.whiteboard_active:
            result.ignore(IgnoreReason.WHITEBOARD_INACTIVE)
            return
        self.state.whiteboard_commands.extend(message.payload.commands)

    @_handles(ControlEvent.WHITEBOARD_CLEAR)
    def _on_whiteboard_clear(self, message: WhiteboardClear, result: DispatchResult) -> None:
        self.state.whiteboard_commands = []

    # ==================== PEER MEDIA ====================

    @_handles(ControlEvent.STUDENT_MIC_CHANGE)
    def _on_mic_change(self, message: StudentMicChange, result: DispatchResult) -> None:
        self.state.peer_mic[message.payload.user_id] = message.payload.is_mic_on

    @_handles(ControlEvent.CAM_CHANGE)
    def _on_cam_change(self, message: CamChange, result: DispatchResult) -> None:
        self.state.peer_camera[message.payload.user_id] = message.payload.is_camera_on

    @_handles(ControlEvent.MEDIA_REQUEST)
    def _on_media_request(self, message: MediaRequest, result: DispatchResult) -> None:
        if not self.state.is_host:
            return
        payload = message.payload
        self.state.media_requests.append(payload)
        result.notify(f"{payload.user_name or payload.user_id} wants to use {payload.media_type}")

    # ==================== LIFECYCLE ====================

    @_handles(ControlEvent.END_MEETING_FOR_ALL)
    def _on_end_meeting(self, message: EndMeetingForAll, result: DispatchResult) -> None:
        state = self.state
        if state.is_host or state.intentional_leave:
            return
        state.intentional_leave = True
        result.effects.append(LocalEffect.LEAVE_SESSION)
        result.notify("Host has ended the meeting", "end")


_unhandled = set(ControlEvent) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No handler for control events: {sorted(str(e) for e in _unhandled)}")
