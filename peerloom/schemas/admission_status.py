"""Status values stored on session registry rows."""

from enum import Enum


class AdmissionStatus(str, Enum):
    """Registry row status.

    - PENDING: Student asked to join, waiting for host review.
    - APPROVED: Student may enter (host approval or auto-join).
    - REJECTED: Host denied the request or removed the student.
    - HOST_ACTIVE: Lifecycle marker written by the host when a session starts.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    HOST_ACTIVE = "host_active"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def request_states(cls) -> list["AdmissionStatus"]:
        """Statuses that belong to a student's admission request."""
        return [AdmissionStatus.PENDING, AdmissionStatus.APPROVED, AdmissionStatus.REJECTED]


__all__ = ["AdmissionStatus"]
