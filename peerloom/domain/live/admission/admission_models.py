"""Admission domain models."""

from pydantic import BaseModel

from peerloom.domain.live.registry.registry_models import RegistryRecord
from peerloom.schemas import AdmissionState, AdmissionStatus


class AdmissionSnapshot(BaseModel):
    """What the registry says about one (group, user) at a point in time."""

    host_active: bool
    is_host: bool = False
    request: RegistryRecord | None = None

    @property
    def request_status(self) -> AdmissionStatus | None:
        return self.request.status if self.request else None


class AdmissionDecision(BaseModel):
    """Outcome of resolving a user's admission."""

    group_id: str
    user_id: str
    state: AdmissionState
    host_active: bool = False
    is_host: bool = False
    request: RegistryRecord | None = None
    # Auto-approved users also join the promoted-speaker set
    auto_approved: bool = False


class AdmissionUpdate(BaseModel):
    """One step of an admission watch, as streamed to the connecting user."""

    group_id: str
    user_id: str
    state: AdmissionState
    request: RegistryRecord | None = None
    auto_approved: bool = False
    # Seconds the client shows a welcome screen before entering
    entry_delay_seconds: float | None = None
    # Seconds before a rejected user is sent away
    leave_delay_seconds: float | None = None
    message: str | None = None


class WaitingRoomAction(BaseModel):
    """Result of a host waiting-room action."""

    group_id: str
    records: list[RegistryRecord]
    broadcasts: int = 0
