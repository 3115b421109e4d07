"""Admission states for a connecting participant."""

from enum import Enum


class AdmissionState(str, Enum):
    """Per-user admission states.

    State Transition Flow:

    CHECKING_HOST_ACTIVE ─┬─> WAITING_FOR_HOST ──> AUTO_JOINING ──> APPROVED
                          ├─> MANUAL_REQUEST_READY ──> REQUEST_PENDING
                          ├─> REQUEST_PENDING ──> APPROVED | REQUEST_REJECTED
                          ├─> REQUEST_REJECTED ──> REQUEST_PENDING (retry)
                          ├─> AUTO_JOINING
                          └─> APPROVED

    State Descriptions:
    - CHECKING_HOST_ACTIVE: Registry is being consulted for a live host marker.
    - WAITING_FOR_HOST: No live host marker; watching for one to appear.
    - MANUAL_REQUEST_READY: Host is live but the user must ask to join.
    - AUTO_JOINING: Host marker appeared (or auto-approval is in flight).
    - REQUEST_PENDING: A pending request is waiting for host review.
    - REQUEST_REJECTED: The host denied the request; retry is possible.
    - APPROVED: User may enter the session. Terminal.
    """

    CHECKING_HOST_ACTIVE = "checking_host_active"
    WAITING_FOR_HOST = "waiting_for_host"
    MANUAL_REQUEST_READY = "manual_request_ready"
    AUTO_JOINING = "auto_joining"
    REQUEST_PENDING = "request_pending"
    REQUEST_REJECTED = "request_rejected"
    APPROVED = "approved"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def watch_states(cls) -> list["AdmissionState"]:
        """States that keep watching the registry for a change."""
        return [
            AdmissionState.WAITING_FOR_HOST,
            AdmissionState.AUTO_JOINING,
            AdmissionState.REQUEST_PENDING,
            AdmissionState.REQUEST_REJECTED,
        ]


__all__ = ["AdmissionState"]
