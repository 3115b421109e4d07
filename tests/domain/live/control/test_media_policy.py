"""Tests for the media authority policy."""

import pytest

from peerloom.domain.live.control.media_policy import (
    DenyReason,
    MediaKind,
    ScreenShareAction,
    compute_capabilities,
    decide_media_toggle,
    decide_screen_share,
)
from peerloom.domain.live.control.session_policy import SessionPolicy

LOCKED = SessionPolicy(media_control_locked=True, camera_control_locked=True)
LISTEN_ONLY = SessionPolicy(force_listen_only=True)


class TestDecideMediaToggle:
    @pytest.mark.parametrize("kind", [MediaKind.MIC, MediaKind.CAMERA])
    def test_host_exempt_from_locks(self, kind: MediaKind):
        decision = decide_media_toggle(kind, enable=True, user_id="h", is_host=True, promoted=set(), policy=LOCKED)

        assert decision.allowed is True
        assert decision.enabled is True

    def test_locked_mic_denied_with_request(self):
        decision = decide_media_toggle(
            MediaKind.MIC, enable=True, user_id="s", is_host=False, promoted={"s"}, policy=LOCKED
        )

        assert decision.allowed is False
        assert decision.reason == DenyReason.MIC_LOCKED
        assert decision.request_media is True
        assert decision.notice == "Microphone is locked by host"

    def test_locked_camera_reason(self):
        decision = decide_media_toggle(
            MediaKind.CAMERA, enable=True, user_id="s", is_host=False, promoted=set(), policy=LOCKED
        )

        assert decision.reason == DenyReason.CAMERA_LOCKED

    def test_switching_off_always_allowed(self):
        decision = decide_media_toggle(
            MediaKind.MIC, enable=False, user_id="s", is_host=False, promoted=set(), policy=LOCKED
        )

        assert decision.allowed is True
        assert decision.enabled is False

    def test_listen_only_requires_promotion(self):
        denied = decide_media_toggle(
            MediaKind.MIC, enable=True, user_id="s", is_host=False, promoted=set(), policy=LISTEN_ONLY
        )
        allowed = decide_media_toggle(
            MediaKind.MIC, enable=True, user_id="s", is_host=False, promoted={"s"}, policy=LISTEN_ONLY
        )

        assert denied.reason == DenyReason.LISTEN_ONLY
        assert allowed.allowed is True

    def test_hard_lock_counts_as_locked(self):
        policy = SessionPolicy().with_mic_lock(False, True)

        decision = decide_media_toggle(
            MediaKind.MIC, enable=True, user_id="s", is_host=False, promoted=set(), policy=policy
        )

        assert decision.allowed is False


class TestComputeCapabilities:
    def test_default_student(self):
        caps = compute_capabilities(
            user_id="s", is_host=False, promoted=set(), can_present=False, policy=SessionPolicy()
        )

        assert caps.can_transmit_audio is True
        assert caps.can_transmit_video is True
        assert caps.can_share_screen is False
        assert caps.can_draw_whiteboard is False

    def test_listen_only_student_cannot_transmit(self):
        caps = compute_capabilities(user_id="s", is_host=False, promoted=set(), can_present=False, policy=LISTEN_ONLY)

        assert caps.can_transmit_audio is False
        assert caps.can_transmit_video is False

    def test_presenter_can_share_and_draw(self):
        caps = compute_capabilities(user_id="s", is_host=False, promoted={"s"}, can_present=True, policy=LOCKED)

        assert caps.can_share_screen is True
        assert caps.can_draw_whiteboard is True
        assert caps.can_transmit_audio is False


class TestDecideScreenShare:
    def test_busy_presenter_denies(self):
        action = decide_screen_share(
            user_id="s", is_host=True, can_present=True, is_sharing=False, presenter="x", has_pending_request=False
        )

        assert action == ScreenShareAction.DENY_PRESENTER_BUSY

    def test_student_without_rights_requests(self):
        action = decide_screen_share(
            user_id="s", is_host=False, can_present=False, is_sharing=False, presenter=None, has_pending_request=False
        )

        assert action == ScreenShareAction.REQUEST

    def test_request_not_repeated(self):
        action = decide_screen_share(
            user_id="s", is_host=False, can_present=False, is_sharing=False, presenter=None, has_pending_request=True
        )

        assert action == ScreenShareAction.ALREADY_REQUESTED

    def test_start_then_stop(self):
        start = decide_screen_share(
            user_id="s", is_host=False, can_present=True, is_sharing=False, presenter=None, has_pending_request=False
        )
        stop = decide_screen_share(
            user_id="s", is_host=False, can_present=True, is_sharing=True, presenter="s", has_pending_request=False
        )

        assert start == ScreenShareAction.START
        assert stop == ScreenShareAction.STOP
