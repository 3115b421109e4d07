"""Admission state machine for a connecting participant."""

from peerloom.schemas import AdmissionState


class AdmissionStateMachine:
    """State machine for per-user admission.

    State flow with triggers:
    - CHECKING_HOST_ACTIVE -> any resolved state (first registry read)
    - WAITING_FOR_HOST -> AUTO_JOINING (host marker appeared, auto-join on)
      | MANUAL_REQUEST_READY (host marker appeared, auto-join off)
    - MANUAL_REQUEST_READY -> REQUEST_PENDING (user asked to join) | WAITING_FOR_HOST (host left)
    - AUTO_JOINING -> APPROVED (auto-approved row written) | WAITING_FOR_HOST (host left)
    - REQUEST_PENDING -> APPROVED | REQUEST_REJECTED (host decision) | WAITING_FOR_HOST (session ended)
    - REQUEST_REJECTED -> REQUEST_PENDING (retry) | APPROVED | WAITING_FOR_HOST
    - APPROVED is terminal and hands off to session setup

    WAITING_FOR_HOST never leads to APPROVED directly: entry always follows a
    registry read that saw a live host marker.
    """

    TRANSITIONS: dict[AdmissionState, set[AdmissionState]] = {
        AdmissionState.CHECKING_HOST_ACTIVE: {
            AdmissionState.WAITING_FOR_HOST,
            AdmissionState.MANUAL_REQUEST_READY,
            AdmissionState.AUTO_JOINING,
            AdmissionState.REQUEST_PENDING,
            AdmissionState.REQUEST_REJECTED,
            AdmissionState.APPROVED,
        },
        AdmissionState.WAITING_FOR_HOST: {
            AdmissionState.AUTO_JOINING,
            AdmissionState.MANUAL_REQUEST_READY,
            AdmissionState.REQUEST_PENDING,
            AdmissionState.REQUEST_REJECTED,
        },
        AdmissionState.MANUAL_REQUEST_READY: {
            AdmissionState.REQUEST_PENDING,
            AdmissionState.APPROVED,
            AdmissionState.WAITING_FOR_HOST,
        },
        AdmissionState.AUTO_JOINING: {
            AdmissionState.APPROVED,
            AdmissionState.REQUEST_PENDING,
            AdmissionState.REQUEST_REJECTED,
            AdmissionState.WAITING_FOR_HOST,
        },
        AdmissionState.REQUEST_PENDING: {
            AdmissionState.APPROVED,
            AdmissionState.REQUEST_REJECTED,
            AdmissionState.WAITING_FOR_HOST,
        },
        AdmissionState.REQUEST_REJECTED: {
            AdmissionState.REQUEST_PENDING,
            AdmissionState.APPROVED,
            AdmissionState.WAITING_FOR_HOST,
        },
        AdmissionState.APPROVED: set(),
    }

    TERMINAL_STATES: set[AdmissionState] = {AdmissionState.APPROVED}

    @classmethod
    def can_transition(cls, current: AdmissionState, new: AdmissionState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current admission state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: AdmissionState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: AdmissionState) -> set[AdmissionState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: AdmissionState) -> set[AdmissionState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
