"""Tests for AdmissionStateMachine transitions."""

import pytest

from peerloom.domain.live.admission.admission_state_machine import AdmissionStateMachine
from peerloom.schemas import AdmissionState


class TestAdmissionStateMachine:
    def test_every_state_has_transitions_entry(self):
        assert set(AdmissionStateMachine.TRANSITIONS) == set(AdmissionState)

    def test_approved_is_terminal(self):
        assert AdmissionStateMachine.is_terminal(AdmissionState.APPROVED)
        assert AdmissionStateMachine.get_valid_transitions(AdmissionState.APPROVED) == set()

    def test_waiting_for_host_never_approves_directly(self):
        assert not AdmissionStateMachine.can_transition(AdmissionState.WAITING_FOR_HOST, AdmissionState.APPROVED)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (AdmissionState.CHECKING_HOST_ACTIVE, AdmissionState.WAITING_FOR_HOST),
            (AdmissionState.WAITING_FOR_HOST, AdmissionState.AUTO_JOINING),
            (AdmissionState.WAITING_FOR_HOST, AdmissionState.MANUAL_REQUEST_READY),
            (AdmissionState.MANUAL_REQUEST_READY, AdmissionState.REQUEST_PENDING),
            (AdmissionState.AUTO_JOINING, AdmissionState.APPROVED),
            (AdmissionState.REQUEST_PENDING, AdmissionState.APPROVED),
            (AdmissionState.REQUEST_PENDING, AdmissionState.REQUEST_REJECTED),
            (AdmissionState.REQUEST_REJECTED, AdmissionState.REQUEST_PENDING),
            (AdmissionState.REQUEST_PENDING, AdmissionState.WAITING_FOR_HOST),
        ],
    )
    def test_valid_transitions(self, current: AdmissionState, new: AdmissionState):
        assert AdmissionStateMachine.can_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (AdmissionState.APPROVED, AdmissionState.WAITING_FOR_HOST),
            (AdmissionState.REQUEST_PENDING, AdmissionState.MANUAL_REQUEST_READY),
            (AdmissionState.WAITING_FOR_HOST, AdmissionState.CHECKING_HOST_ACTIVE),
        ],
    )
    def test_invalid_transitions(self, current: AdmissionState, new: AdmissionState):
        assert not AdmissionStateMachine.can_transition(current, new)

    def test_valid_sources_of_approved(self):
        sources = AdmissionStateMachine.get_valid_sources(AdmissionState.APPROVED)

        assert AdmissionState.WAITING_FOR_HOST not in sources
        assert AdmissionState.AUTO_JOINING in sources
        assert AdmissionState.REQUEST_PENDING in sources
