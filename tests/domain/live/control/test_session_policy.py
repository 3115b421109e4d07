"""Tests for SessionPolicy snapshots."""

import pytest
from pydantic import ValidationError

from peerloom.domain.live.control.session_policy import SessionPolicy


class TestSessionPolicy:
    def test_defaults_unlocked(self):
        policy = SessionPolicy()

        assert policy.mic_locked is False
        assert policy.camera_locked is False
        assert policy.force_listen_only is False

    def test_with_methods_return_new_values(self):
        policy = SessionPolicy()

        locked = policy.with_mic_lock(True, False).with_camera_lock(False, True)

        assert policy.mic_locked is False
        assert locked.mic_locked is True
        assert locked.hard_mute_lock is False
        assert locked.camera_locked is True

    def test_frozen(self):
        with pytest.raises(ValidationError):
            SessionPolicy().force_listen_only = True  # type: ignore[misc]
