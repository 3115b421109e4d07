"""Tests for ControlDispatcher: authorization, dedup and per-event handling."""

import pytest

from peerloom.domain.live.control.control_dispatcher import (
    ControlDispatcher,
    IgnoreReason,
    LocalEffect,
)
from peerloom.domain.live.control.control_messages import ControlEvent, decode_message, make_message
from peerloom.domain.live.control.media_policy import MediaKind, decide_media_toggle
from peerloom.domain.live.control.participant_state import ParticipantState

HOST = "host_1"
STUDENT = "student_1"
OTHER = "student_2"


@pytest.fixture
def student_state() -> ParticipantState:
    return ParticipantState(user_id=STUDENT, host_id=HOST, user_name="Sam")


@pytest.fixture
def host_state() -> ParticipantState:
    return ParticipantState(user_id=HOST, host_id=HOST, user_name="Hana", can_present=True)


@pytest.fixture
def student(student_state: ParticipantState) -> ControlDispatcher:
    return ControlDispatcher(student_state)


@pytest.fixture
def host(host_state: ParticipantState) -> ControlDispatcher:
    return ControlDispatcher(host_state)


class TestAuthorization:
    def test_host_only_event_from_student_ignored(self, student: ControlDispatcher):
        # Arrange
        student.state.is_mic_on = True
        message = make_message(ControlEvent.MUTE_ALL, OTHER, locked=True, hard_lock=True)

        # Act
        result = student.dispatch(message)

        # Assert
        assert result.applied is False
        assert result.ignored == IgnoreReason.NOT_HOST
        assert student.state.is_mic_on is True
        assert student.state.policy.mic_locked is False

    def test_participant_cannot_speak_for_someone_else(self, host: ControlDispatcher):
        message = make_message(ControlEvent.HAND_RAISE, OTHER, user_id=STUDENT, action="raise")

        result = host.dispatch(message)

        assert result.ignored == IgnoreReason.SENDER_MISMATCH
        assert STUDENT not in host.state.raised_hands

    def test_student_may_lower_own_hand(self, host: ControlDispatcher):
        host.dispatch(make_message(ControlEvent.HAND_RAISE, STUDENT, user_id=STUDENT, sent_at=1))

        result = host.dispatch(make_message(ControlEvent.HAND_LOWER, STUDENT, user_id=STUDENT, sent_at=2))

        assert result.applied is True
        assert STUDENT not in host.state.raised_hands

    def test_student_cannot_lower_other_hand(self, host: ControlDispatcher):
        host.dispatch(make_message(ControlEvent.HAND_RAISE, STUDENT, user_id=STUDENT, sent_at=1))

        result = host.dispatch(make_message(ControlEvent.HAND_LOWER, OTHER, user_id=STUDENT, sent_at=2))

        assert result.applied is False
        assert STUDENT in host.state.raised_hands

    def test_self_echo_ignored(self, student: ControlDispatcher):
        result = student.dispatch(make_message(ControlEvent.HAND_RAISE, STUDENT, user_id=STUDENT))

        assert result.ignored == IgnoreReason.SELF_ECHO
        assert len(student.state.raised_hands) == 0

    def test_duplicate_delivery_applied_once(self, host: ControlDispatcher):
        message = make_message(ControlEvent.MEDIA_REQUEST, STUDENT, user_id=STUDENT, media_type="mic")

        first = host.dispatch(message)
        second = host.dispatch(message)

        assert first.applied is True
        assert second.ignored == IgnoreReason.DUPLICATE
        assert len(host.state.media_requests) == 1


class TestLocks:
    def test_mute_all_forces_mic_off_and_notifies(self, student: ControlDispatcher):
        # Arrange
        student.state.is_mic_on = True

        # Act
        result = student.dispatch(make_message(ControlEvent.MUTE_ALL, HOST, locked=True, hard_lock=True))

        # Assert
        assert result.effects == [LocalEffect.FORCE_MIC_OFF]
        assert student.state.is_mic_on is False
        assert student.state.policy.hard_mute_lock is True
        assert result.notices[0].kind == "mute"

    def test_hard_lock_holds_until_unmute_all(self, student: ControlDispatcher):
        """A hard-locked student cannot re-enable the mic until the host unmutes all."""
        student.dispatch(make_message(ControlEvent.MUTE_ALL, HOST, locked=True, hard_lock=True))

        blocked = decide_media_toggle(
            MediaKind.MIC,
            enable=True,
            user_id=STUDENT,
            is_host=False,
            promoted=student.state.promoted,
            policy=student.state.policy,
        )
        assert blocked.allowed is False
        assert blocked.request_media is True

        student.dispatch(make_message(ControlEvent.UNMUTE_ALL, HOST))

        allowed = decide_media_toggle(
            MediaKind.MIC,
            enable=True,
            user_id=STUDENT,
            is_host=False,
            promoted=student.state.promoted,
            policy=student.state.policy,
        )
        assert allowed.allowed is True
        assert student.state.policy.mic_locked is False

    def test_unmute_all_frame_always_releases_hard_lock(self, student: ControlDispatcher):
        # Arrange
        student.dispatch(make_message(ControlEvent.MUTE_ALL, HOST, locked=True, hard_lock=True, sent_at=1))
        frame = {"event": "unmute-all", "payload": {"senderId": HOST, "sentAt": 2, "locked": True, "hardLock": True}}

        # Act
        student.dispatch(decode_message(frame))

        # Assert
        assert student.state.policy.mic_locked is False
        assert student.state.policy.hard_mute_lock is False

    def test_mute_all_from_student_does_not_touch_host(self, host: ControlDispatcher):
        host.state.is_mic_on = True

        result = host.dispatch(make_message(ControlEvent.MUTE_ALL, OTHER))

        assert result.applied is False
        assert host.state.is_mic_on is True

    def test_disable_cameras_forces_camera_off(self, student: ControlDispatcher):
        student.state.is_camera_on = True

        result = student.dispatch(make_message(ControlEvent.DISABLE_CAMERAS, HOST, locked=True, hard_lock=False))

        assert result.effects == [LocalEffect.FORCE_CAMERA_OFF]
        assert student.state.policy.camera_locked is True

        student.dispatch(make_message(ControlEvent.ENABLE_CAMERAS, HOST))

        assert student.state.policy.camera_locked is False


class TestSpotlightAndHands:
    def test_spotlight_set_and_cleared(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.SPOTLIGHT, HOST, spotlight_user_id=OTHER, active=True, sent_at=1))
        assert student.state.spotlight.holder == OTHER
        assert student.state.spotlight_immune is True

        student.dispatch(make_message(ControlEvent.SPOTLIGHT, HOST, spotlight_user_id=None, active=False, sent_at=2))
        assert student.state.spotlight.holder is None
        assert student.state.spotlight_immune is False

    def test_late_older_raise_does_not_resurrect_lowered_hand(self, host: ControlDispatcher):
        host.dispatch(make_message(ControlEvent.HAND_LOWER, STUDENT, user_id=STUDENT, sent_at=200))

        result = host.dispatch(make_message(ControlEvent.HAND_RAISE, STUDENT, user_id=STUDENT, sent_at=100))

        assert STUDENT not in host.state.raised_hands
        assert result.notices == []

    def test_hand_raise_with_lower_action(self, host: ControlDispatcher):
        host.dispatch(make_message(ControlEvent.HAND_RAISE, STUDENT, user_id=STUDENT, sent_at=1))

        host.dispatch(make_message(ControlEvent.HAND_RAISE, STUDENT, user_id=STUDENT, action="lower", sent_at=2))

        assert STUDENT not in host.state.raised_hands

    def test_host_lowering_my_hand_notifies_me(self, student: ControlDispatcher):
        student.state.raised_hands.raise_hand(STUDENT, "Sam", 1)

        result = student.dispatch(make_message(ControlEvent.HAND_LOWER, HOST, user_id=STUDENT, sent_at=2))

        assert result.notices[0].message == "Host lowered your hand"


class TestScreenShare:
    def test_request_reaches_host_once(self, host: ControlDispatcher):
        host.dispatch(make_message(ControlEvent.SCREEN_SHARE_REQUEST, STUDENT, student_id=STUDENT, sent_at=1))
        host.dispatch(make_message(ControlEvent.SCREEN_SHARE_REQUEST, STUDENT, student_id=STUDENT, sent_at=2))

        assert list(host.state.screen_share_requests) == [STUDENT]

    def test_approval_grants_present_rights(self, student: ControlDispatcher):
        result = student.dispatch(make_message(ControlEvent.SCREEN_SHARE_APPROVED, HOST, student_id=STUDENT))

        assert student.state.can_present is True
        assert student.state.screen_share_approved is True
        assert result.notices[0].kind == "check"

    def test_approval_for_someone_else_is_noop(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.SCREEN_SHARE_APPROVED, HOST, student_id=OTHER))

        assert student.state.can_present is False

    def test_second_presenter_is_rejected(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.SCREEN_SHARE_STARTED, OTHER, user_id=OTHER))

        result = student.dispatch(make_message(ControlEvent.SCREEN_SHARE_STARTED, "student_3", user_id="student_3"))

        assert result.ignored == IgnoreReason.PRESENTER_BUSY
        assert student.state.presenter.holder == OTHER

    def test_host_takes_over_presenter_slot(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.SCREEN_SHARE_STARTED, OTHER, user_id=OTHER))

        student.dispatch(make_message(ControlEvent.SCREEN_SHARE_STARTED, HOST, user_id=HOST))

        assert student.state.presenter.holder == HOST

    def test_stop_releases_slot(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.SCREEN_SHARE_STARTED, OTHER, user_id=OTHER, sent_at=1))

        student.dispatch(make_message(ControlEvent.SCREEN_SHARE_STOPPED, OTHER, user_id=OTHER, sent_at=2))

        assert student.state.presenter.holder is None

    def test_force_stop_my_share(self, student: ControlDispatcher):
        student.state.presenter.acquire(STUDENT)
        student.state.is_screen_sharing = True

        result = student.dispatch(make_message(ControlEvent.FORCE_STOP_SCREENSHARE, HOST, user_id=STUDENT))

        assert result.effects == [LocalEffect.STOP_SCREEN_SHARE]
        assert student.state.is_screen_sharing is False
        assert student.state.presenter.holder is None


class TestSpeakers:
    def test_promote_listen_only_student_publishes(self, student: ControlDispatcher):
        student.state.policy = student.state.policy.with_listen_only(True)

        result = student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT))

        assert result.effects == [LocalEffect.PUBLISH_TRACKS]
        assert STUDENT in student.state.promoted
        assert student.state.capabilities().can_transmit_audio is True
        assert student.state.capabilities().can_share_screen is True

    def test_promote_someone_else_only_tracks_them(self, student: ControlDispatcher):
        result = student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=OTHER))

        assert result.effects == []
        assert OTHER in student.state.promoted

    def test_demote_unpublishes(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT, sent_at=1))
        student.state.is_mic_on = True

        result = student.dispatch(make_message(ControlEvent.DEMOTE_SPEAKER, HOST, user_id=STUDENT, sent_at=2))

        assert result.effects == [LocalEffect.UNPUBLISH_TRACKS]
        assert student.state.is_mic_on is False
        assert student.state.capabilities().can_transmit_audio is False

    def test_demote_admitted_speaker_without_prior_promote(self, student: ControlDispatcher):
        """Students admitted straight in are speakers without ever receiving promote-speaker."""
        # Arrange
        student.state.promoted.add(STUDENT)
        student.state.is_mic_on = True
        student.state.is_camera_on = True

        # Act
        result = student.dispatch(make_message(ControlEvent.DEMOTE_SPEAKER, HOST, user_id=STUDENT))

        # Assert
        assert result.effects == [LocalEffect.UNPUBLISH_TRACKS]
        assert student.state.policy.force_listen_only is True
        assert student.state.is_mic_on is False
        assert student.state.is_camera_on is False
        decision = decide_media_toggle(
            MediaKind.MIC,
            enable=True,
            user_id=STUDENT,
            is_host=False,
            promoted=student.state.promoted,
            policy=student.state.policy,
        )
        assert decision.allowed is False

    def test_demote_of_host_is_ignored(self, host: ControlDispatcher):
        result = host.dispatch(make_message(ControlEvent.DEMOTE_SPEAKER, HOST, user_id=HOST))

        assert result.effects == []
        assert host.state.can_present is True

    def test_repeated_promote_reapplies_speaker_grant(self, student: ControlDispatcher):
        student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT, sent_at=1))
        student.state.policy = student.state.policy.with_listen_only(True)

        again = student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT, sent_at=2))

        assert again.effects == [LocalEffect.PUBLISH_TRACKS]
        assert student.state.policy.force_listen_only is False
        assert student.state.can_present is True

    def test_promote_notifies_once(self, student: ControlDispatcher):
        first = student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT, sent_at=1))
        again = student.dispatch(make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT, sent_at=2))

        assert len(first.notices) == 1
        assert again.notices == []
        assert again.effects == [LocalEffect.PUBLISH_TRACKS]


class TestWhiteboard:
    def test_batch_ignored_while_inactive(self, student: ControlDispatcher):
        result = student.dispatch(
            make_message(ControlEvent.WHITEBOARD_BATCH, HOST, commands=[{"fromX": 0, "fromY": 0, "toX": 1, "toY": 1}])
        )

        assert result.ignored == IgnoreReason.WHITEBOARD_INACTIVE

    def test_toggle_batch_clear(self, student: ControlDispatcher):
        stroke = {"fromX": 0, "fromY": 0, "toX": 1, "toY": 1}
        student.dispatch(make_message(ControlEvent.WHITEBOARD_TOGGLE, HOST, active=True, drawing_commands=[stroke]))
        student.dispatch(make_message(ControlEvent.WHITEBOARD_BATCH, HOST, commands=[stroke, stroke]))

        assert student.state.whiteboard_active is True
        assert len(student.state.whiteboard_commands) == 3

        student.dispatch(make_message(ControlEvent.WHITEBOARD_CLEAR, HOST))

        assert student.state.whiteboard_commands == []


class TestLifecycle:
    def test_end_meeting_makes_student_leave(self, student: ControlDispatcher):
        result = student.dispatch(make_message(ControlEvent.END_MEETING_FOR_ALL, HOST))

        assert result.effects == [LocalEffect.LEAVE_SESSION]
        assert student.state.intentional_leave is True

    def test_end_meeting_from_student_ignored(self, student: ControlDispatcher):
        result = student.dispatch(make_message(ControlEvent.END_MEETING_FOR_ALL, OTHER))

        assert result.applied is False
        assert student.state.intentional_leave is False

    def test_peer_media_flags_tracked(self, host: ControlDispatcher):
        host.dispatch(make_message(ControlEvent.STUDENT_MIC_CHANGE, STUDENT, user_id=STUDENT, is_mic_on=True))
        host.dispatch(make_message(ControlEvent.CAM_CHANGE, STUDENT, user_id=STUDENT, is_camera_on=False))

        assert host.state.peer_mic[STUDENT] is True
        assert host.state.peer_camera[STUDENT] is False
