"""Session-wide lock flags controlled by the host."""

from pydantic import BaseModel, ConfigDict


class SessionPolicy(BaseModel):
    """
    Immutable snapshot of the host-controlled lock flags.

    Receivers replace their policy with a new value on each lock broadcast
    instead of mutating individual flags.
    """

    model_config = ConfigDict(frozen=True)

    media_control_locked: bool = False
    hard_mute_lock: bool = False
    camera_control_locked: bool = False
    hard_camera_lock: bool = False
    force_listen_only: bool = False

    @property
    def mic_locked(self) -> bool:
        return self.media_control_locked or self.hard_mute_lock

    @property
    def camera_locked(self) -> bool:
        return self.camera_control_locked or self.hard_camera_lock

    def with_mic_lock(self, locked: bool, hard_lock: bool) -> "SessionPolicy":
        return self.model_copy(update={"media_control_locked": locked, "hard_mute_lock": hard_lock})

    def with_camera_lock(self, locked: bool, hard_lock: bool) -> "SessionPolicy":
        return self.model_copy(update={"camera_control_locked": locked, "hard_camera_lock": hard_lock})

    def with_listen_only(self, force_listen_only: bool) -> "SessionPolicy":
        return self.model_copy(update={"force_listen_only": force_listen_only})
