"""In-memory state held by each connected participant."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from peerloom.shared.domain.timeutils import utc_now_ms

from .control_messages import DrawCommand, MediaRequestPayload, ScreenShareRequestPayload
from .exclusive_claim import ExclusiveClaim
from .media_policy import Capabilities, compute_capabilities
from .session_policy import SessionPolicy


class Role(str, Enum):
    HOST = "host"
    STUDENT = "student"

    def __str__(self) -> str:
        return self.value


class ConnectionState(str, Enum):
    """RTC connection states as reported by the transport."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    DISCONNECTING = "DISCONNECTING"

    def __str__(self) -> str:
        return self.value


class RaisedHand(BaseModel):
    user_id: str
    user_name: str | None = None
    raised_at: int


@dataclass
class _HandEntry:
    raised: bool
    at: int
    user_name: str | None = None


class RaisedHands:
    """
    Raised hands as a last-write-wins register per user, keyed on `sentAt`.

    Lowered hands leave a tombstone so a late, older `hand-raise` cannot bring
    the hand back. On equal timestamps a lower wins.
    """

    def __init__(self):
        self._entries: dict[str, _HandEntry] = {}

    def _apply(self, user_id: str, raised: bool, at: int, user_name: str | None = None) -> bool:
        current = self._entries.get(user_id)
        if current is not None:
            if at < current.at:
                return False
            if at == current.at and (current.raised == raised or not current.raised):
                return False

        self._entries[user_id] = _HandEntry(
            raised=raised,
            at=at,
            user_name=user_name or (current.user_name if current else None),
        )
        return True

    def raise_hand(self, user_id: str, user_name: str | None, at: int) -> bool:
        """Returns True if the hand became visible."""
        was_raised = self.is_raised(user_id)
        self._apply(user_id, True, at, user_name)
        return not was_raised and self.is_raised(user_id)

    def lower_hand(self, user_id: str, at: int) -> bool:
        """Returns True if a visible hand was removed."""
        was_raised = self.is_raised(user_id)
        self._apply(user_id, False, at)
        return was_raised and not self.is_raised(user_id)

    def forget(self, user_id: str) -> bool:
        """Lower the hand of a user who left the session."""
        return self.lower_hand(user_id, utc_now_ms())

    def is_raised(self, user_id: str) -> bool:
        entry = self._entries.get(user_id)
        return entry is not None and entry.raised

    def ordered(self) -> list[RaisedHand]:
        """Raised hands, earliest first."""
        hands = [
            RaisedHand(user_id=user_id, user_name=entry.user_name, raised_at=entry.at)
            for user_id, entry in self._entries.items()
            if entry.raised
        ]
        return sorted(hands, key=lambda h: (h.raised_at, h.user_id))

    def __contains__(self, user_id: object) -> bool:
        return isinstance(user_id, str) and self.is_raised(user_id)

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.raised)


@dataclass
class ParticipantState:
    """Everything a participant knows about the live session it is connected to."""

    user_id: str
    host_id: str
    user_name: str | None = None

    is_mic_on: bool = False
    is_camera_on: bool = False

    policy: SessionPolicy = field(default_factory=SessionPolicy)
    promoted: set[str] = field(default_factory=set)
    raised_hands: RaisedHands = field(default_factory=RaisedHands)

    presenter: ExclusiveClaim = field(default_factory=lambda: ExclusiveClaim("presenter"))
    spotlight: ExclusiveClaim = field(default_factory=lambda: ExclusiveClaim("spotlight"))
    spotlight_immune: bool = False

    can_present: bool = False
    screen_share_approved: bool = False
    is_screen_sharing: bool = False

    # Host only
    screen_share_requests: dict[str, ScreenShareRequestPayload] = field(default_factory=dict)
    media_requests: list[MediaRequestPayload] = field(default_factory=list)

    whiteboard_active: bool = False
    whiteboard_commands: list[DrawCommand] = field(default_factory=list)

    # Informational, as broadcast by peers
    peer_mic: dict[str, bool] = field(default_factory=dict)
    peer_camera: dict[str, bool] = field(default_factory=dict)

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    intentional_leave: bool = False
    critical_error: str | None = None

    @property
    def role(self) -> Role:
        return Role.HOST if self.user_id == self.host_id else Role.STUDENT

    @property
    def is_host(self) -> bool:
        return self.role == Role.HOST

    def capabilities(self) -> Capabilities:
        return compute_capabilities(
            user_id=self.user_id,
            is_host=self.is_host,
            promoted=self.promoted,
            can_present=self.can_present,
            policy=self.policy,
        )
