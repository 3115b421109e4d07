"""
Typed control messages carried on the live control channel.

Every message is an envelope ``{"event": <name>, "payload": {...}}``. The set of
events is closed: ``ControlMessage`` is a discriminated union keyed by ``event``
and anything outside it fails validation.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from peerloom.shared.domain.timeutils import utc_now_ms


class ControlEvent(str, Enum):
    MUTE_ALL = "mute-all"
    UNMUTE_ALL = "unmute-all"
    DISABLE_CAMERAS = "disable-cameras"
    ENABLE_CAMERAS = "enable-cameras"
    SPOTLIGHT = "spotlight"
    HAND_RAISE = "hand-raise"
    HAND_LOWER = "hand-lower"
    SCREEN_SHARE_REQUEST = "screen-share-request"
    SCREEN_SHARE_APPROVED = "screen-share-approved"
    SCREEN_SHARE_REJECTED = "screen-share-rejected"
    SCREEN_SHARE_STARTED = "screen-share-started"
    SCREEN_SHARE_STOPPED = "screen-share-stopped"
    FORCE_STOP_SCREENSHARE = "force-stop-screenshare"
    PROMOTE_SPEAKER = "promote-speaker"
    DEMOTE_SPEAKER = "demote-speaker"
    WHITEBOARD_TOGGLE = "whiteboard-toggle"
    WHITEBOARD_BATCH = "whiteboard-batch"
    WHITEBOARD_CLEAR = "whiteboard-clear"
    STUDENT_MIC_CHANGE = "student-mic-change"
    CAM_CHANGE = "cam-change"
    MEDIA_REQUEST = "media-request"
    END_MEETING_FOR_ALL = "end-meeting-for-all"

    def __str__(self) -> str:
        return self.value


# Events honoured only when sent by the session host. `hand-lower` is checked
# separately since a participant may lower their own hand.
HOST_ONLY_EVENTS: frozenset[ControlEvent] = frozenset(
    {
        ControlEvent.MUTE_ALL,
        ControlEvent.UNMUTE_ALL,
        ControlEvent.DISABLE_CAMERAS,
        ControlEvent.ENABLE_CAMERAS,
        ControlEvent.SPOTLIGHT,
        ControlEvent.SCREEN_SHARE_APPROVED,
        ControlEvent.SCREEN_SHARE_REJECTED,
        ControlEvent.FORCE_STOP_SCREENSHARE,
        ControlEvent.PROMOTE_SPEAKER,
        ControlEvent.DEMOTE_SPEAKER,
        ControlEvent.END_MEETING_FOR_ALL,
    }
)


class ControlPayload(BaseModel):
    """Common payload fields. Wire names are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    sender_id: str = ""
    sent_at: int = Field(default_factory=utc_now_ms)


class LockPayload(ControlPayload):
    locked: bool = True
    hard_lock: bool = True


class UnlockPayload(ControlPayload):
    locked: bool = False
    hard_lock: bool = False


class SpotlightPayload(ControlPayload):
    spotlight_user_id: str | None = None
    active: bool = True
    immune: bool = True


class HandPayload(ControlPayload):
    user_id: str
    user_name: str | None = None
    action: Literal["raise", "lower"] | None = None


class ScreenShareRequestPayload(ControlPayload):
    student_id: str
    student_name: str | None = None


class ScreenShareDecisionPayload(ControlPayload):
    student_id: str


class PresenterPayload(ControlPayload):
    user_id: str
    user_name: str | None = None


class SpeakerPayload(ControlPayload):
    user_id: str
    user_name: str | None = None


class DrawCommand(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    from_x: float
    from_y: float
    to_x: float
    to_y: float
    color: str = "#000000"
    line_width: float = 3
    tool: str = "pen"


class WhiteboardTogglePayload(ControlPayload):
    user_id: str | None = None
    active: bool
    drawing_commands: list[DrawCommand] = Field(default_factory=list)


class WhiteboardBatchPayload(ControlPayload):
    user_id: str | None = None
    commands: list[DrawCommand] = Field(default_factory=list)


class WhiteboardClearPayload(ControlPayload):
    user_id: str | None = None


class MicChangePayload(ControlPayload):
    user_id: str
    is_mic_on: bool


class CamChangePayload(ControlPayload):
    user_id: str
    is_camera_on: bool


class MediaRequestPayload(ControlPayload):
    room_id: str | None = None
    user_id: str
    user_name: str | None = None
    media_type: Literal["mic", "cam"]


class EndMeetingPayload(ControlPayload):
    pass


class _Message(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @property
    def sender_id(self) -> str:
        return self.payload.sender_id  # type: ignore[attr-defined]

    @property
    def sent_at(self) -> int:
        return self.payload.sent_at  # type: ignore[attr-defined]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MuteAll(_Message):
    event: Literal["mute-all"] = "mute-all"
    payload: LockPayload = Field(default_factory=LockPayload)


class UnmuteAll(_Message):
    event: Literal["unmute-all"] = "unmute-all"
    payload: UnlockPayload = Field(default_factory=UnlockPayload)


class DisableCameras(_Message):
    event: Literal["disable-cameras"] = "disable-cameras"
    payload: LockPayload = Field(default_factory=LockPayload)


class EnableCameras(_Message):
    event: Literal["enable-cameras"] = "enable-cameras"
    payload: UnlockPayload = Field(default_factory=UnlockPayload)


class Spotlight(_Message):
    event: Literal["spotlight"] = "spotlight"
    payload: SpotlightPayload


class HandRaise(_Message):
    event: Literal["hand-raise"] = "hand-raise"
    payload: HandPayload


class HandLower(_Message):
    event: Literal["hand-lower"] = "hand-lower"
    payload: HandPayload


class ScreenShareRequest(_Message):
    event: Literal["screen-share-request"] = "screen-share-request"
    payload: ScreenShareRequestPayload


class ScreenShareApproved(_Message):
    event: Literal["screen-share-approved"] = "screen-share-approved"
    payload: ScreenShareDecisionPayload


class ScreenShareRejected(_Message):
    event: Literal["screen-share-rejected"] = "screen-share-rejected"
    payload: ScreenShareDecisionPayload


class ScreenShareStarted(_Message):
    event: Literal["screen-share-started"] = "screen-share-started"
    payload: PresenterPayload


class ScreenShareStopped(_Message):
    event: Literal["screen-share-stopped"] = "screen-share-stopped"
    payload: PresenterPayload


class ForceStopScreenshare(_Message):
    event: Literal["force-stop-screenshare"] = "force-stop-screenshare"
    payload: PresenterPayload


class PromoteSpeaker(_Message):
    event: Literal["promote-speaker"] = "promote-speaker"
    payload: SpeakerPayload


class DemoteSpeaker(_Message):
    event: Literal["demote-speaker"] = "demote-speaker"
    payload: SpeakerPayload


class WhiteboardToggle(_Message):
    event: Literal["whiteboard-toggle"] = "whiteboard-toggle"
    payload: WhiteboardTogglePayload


class WhiteboardBatch(_Message):
    event: Literal["whiteboard-batch"] = "whiteboard-batch"
    payload: WhiteboardBatchPayload


class WhiteboardClear(_Message):
    event: Literal["whiteboard-clear"] = "whiteboard-clear"
    payload: WhiteboardClearPayload = Field(default_factory=WhiteboardClearPayload)


class StudentMicChange(_Message):
    event: Literal["student-mic-change"] = "student-mic-change"
    payload: MicChangePayload


class CamChange(_Message):
    event: Literal["cam-change"] = "cam-change"
    payload: CamChangePayload


class MediaRequest(_Message):
    event: Literal["media-request"] = "media-request"
    payload: MediaRequestPayload


class EndMeetingForAll(_Message):
    event: Literal["end-meeting-for-all"] = "end-meeting-for-all"
    payload: EndMeetingPayload = Field(default_factory=EndMeetingPayload)


ControlMessage = Annotated[
    MuteAll
    | UnmuteAll
    | DisableCameras
    | EnableCameras
    | Spotlight
    | HandRaise
    | HandLower
    | ScreenShareRequest
    | ScreenShareApproved
    | ScreenShareRejected
    | ScreenShareStarted
    | ScreenShareStopped
    | ForceStopScreenshare
    | PromoteSpeaker
    | DemoteSpeaker
    | WhiteboardToggle
    | WhiteboardBatch
    | WhiteboardClear
    | StudentMicChange
    | CamChange
    | MediaRequest
    | EndMeetingForAll,
    Field(discriminator="event"),
]

control_message_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)

MESSAGE_TYPES: dict[ControlEvent, type[_Message]] = {
    ControlEvent(cls.model_fields["event"].default): cls
    for cls in (
        MuteAll,
        UnmuteAll,
        DisableCameras,
        EnableCameras,
        Spotlight,
        HandRaise,
        HandLower,
        ScreenShareRequest,
        ScreenShareApproved,
        ScreenShareRejected,
        ScreenShareStarted,
        ScreenShareStopped,
        ForceStopScreenshare,
        PromoteSpeaker,
        DemoteSpeaker,
        WhiteboardToggle,
        WhiteboardBatch,
        WhiteboardClear,
        StudentMicChange,
        CamChange,
        MediaRequest,
        EndMeetingForAll,
    )
}


def make_message(event: ControlEvent | str, sender_id: str, **fields: Any) -> ControlMessage:
    """Build a message for `event` with payload `fields` (snake_case or camelCase)."""
    event = ControlEvent(event)
    return control_message_adapter.validate_python(
        {"event": event.value, "payload": {**fields, "senderId": sender_id}}
    )


def decode_message(data: bytes | str | dict) -> ControlMessage:
    """Parse a wire envelope. Raises pydantic.ValidationError on unknown or malformed input."""
    if isinstance(data, dict):
        return control_message_adapter.validate_python(data)
    return control_message_adapter.validate_json(data)


def encode_message(message: ControlMessage) -> bytes:
    return control_message_adapter.dump_json(message, by_alias=True)
