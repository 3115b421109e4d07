"""Tests for LiveSessionService: lifecycle, control relay and media tokens."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.control.control_messages import ControlEvent, EndMeetingForAll, make_message
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.schemas import AdmissionStatus
from peerloom.services.integrations.livekit_service import LivekitService
from peerloom.utils.app_errors import AppError, AppErrorCode
from tests.fixtures.registry_fixtures import InMemoryRegistry

GROUP = "group_1"
HOST = "host_1"
STUDENT = "student_1"


class TestStartSession:
    async def test_creates_marker(self, live_session_service: LiveSessionService, registry: InMemoryRegistry):
        result = await live_session_service.start_session(GROUP, HOST, "Hana")

        assert result.created is True
        assert result.marker.status == AdmissionStatus.HOST_ACTIVE
        assert await registry.is_host_active(GROUP)

    async def test_restart_reuses_marker(self, live_session_service: LiveSessionService):
        first = await live_session_service.start_session(GROUP, HOST)

        second = await live_session_service.start_session(GROUP, HOST)

        assert second.created is False
        assert second.marker.request_id == first.marker.request_id

    async def test_other_host_conflicts(self, live_session_service: LiveSessionService):
        await live_session_service.start_session(GROUP, HOST)

        with pytest.raises(AppError) as exc_info:
            await live_session_service.start_session(GROUP, "host_2")

        assert exc_info.value.errcode == AppErrorCode.E_NOT_HOST
        assert exc_info.value.status_code == 409

    async def test_new_session_resets_attendance(
        self,
        live_session_service: LiveSessionService,
        attendance_service: AttendanceService,
    ):
        attendance_service.record(GROUP, STUDENT)

        await live_session_service.start_session(GROUP, HOST)

        assert attendance_service.entries(GROUP) == []

    async def test_stale_rows_cleared(self, live_session_service: LiveSessionService, registry: InMemoryRegistry):
        registry.put(GROUP, STUDENT, AdmissionStatus.APPROVED)

        result = await live_session_service.start_session(GROUP, HOST)

        assert result.removed_rows == 1
        assert await registry.get_request(GROUP, STUDENT) is None


class TestEndSession:
    async def test_broadcasts_then_deletes(
        self,
        live_session_service: LiveSessionService,
        registry: InMemoryRegistry,
        channel: LiveControlChannel,
    ):
        # Arrange
        await live_session_service.start_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.APPROVED)

        async with channel.subscribe(GROUP) as messages:
            # Act
            result = await live_session_service.end_session(GROUP, HOST)
            message = await asyncio.wait_for(anext(messages), timeout=1)

        # Assert
        assert isinstance(message, EndMeetingForAll)
        assert result.notified == 1
        assert result.removed_rows == 2
        assert await registry.list_group_rows(GROUP) == []

    async def test_only_host_can_end(self, live_session_service: LiveSessionService):
        await live_session_service.start_session(GROUP, HOST)

        with pytest.raises(AppError) as exc_info:
            await live_session_service.end_session(GROUP, STUDENT)

        assert exc_info.value.status_code == 403

    async def test_room_close_failure_is_tolerated(
        self, registry: InMemoryRegistry, channel: LiveControlChannel, fast_cfg
    ):
        livekit = AsyncMock(spec=LivekitService)
        livekit.delete_room.side_effect = RuntimeError("rtc down")
        service = LiveSessionService(
            registry=registry,  # type: ignore[arg-type]
            channel=channel,
            livekit=livekit,
            cfg=fast_cfg,
        )
        await service.start_session(GROUP, HOST)

        result = await service.end_session(GROUP, HOST)

        assert result.removed_rows == 1
        livekit.delete_room.assert_awaited_once_with(GROUP)


class TestHostStatus:
    async def test_inactive(self, live_session_service: LiveSessionService):
        status = await live_session_service.host_status(GROUP)

        assert status.host_active is False
        assert status.host_id is None

    async def test_active(self, live_session_service: LiveSessionService):
        await live_session_service.start_session(GROUP, HOST, "Hana")

        status = await live_session_service.host_status(GROUP)

        assert status.host_active is True
        assert status.host_id == HOST
        assert status.host_name == "Hana"
        assert status.started_at is not None


class TestPublishControl:
    @pytest.fixture(autouse=True)
    async def live_class(self, live_session_service: LiveSessionService, registry: InMemoryRegistry):
        await live_session_service.start_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.APPROVED)

    async def test_sender_is_stamped(self, live_session_service: LiveSessionService, channel: LiveControlChannel):
        message = make_message(ControlEvent.HAND_RAISE, "spoofed", user_id=STUDENT)

        async with channel.subscribe(GROUP) as messages:
            result = await live_session_service.publish_control(GROUP, STUDENT, message)
            received = await asyncio.wait_for(anext(messages), timeout=1)

        assert result.event == "hand-raise"
        assert result.receivers == 1
        assert received.sender_id == STUDENT

    async def test_host_only_event_from_student_rejected(self, live_session_service: LiveSessionService):

        with pytest.raises(AppError) as exc_info:
            await live_session_service.publish_control(GROUP, STUDENT, make_message(ControlEvent.MUTE_ALL, STUDENT))

        assert exc_info.value.errcode == AppErrorCode.E_CONTROL_NOT_ALLOWED

    async def test_host_may_lower_any_hand(self, live_session_service: LiveSessionService):
        message = make_message(ControlEvent.HAND_LOWER, HOST, user_id=STUDENT)

        authorized = await live_session_service.authorize_control(GROUP, HOST, message)

        assert authorized.sender_id == HOST

    async def test_student_cannot_lower_other_hand(self, live_session_service: LiveSessionService):
        message = make_message(ControlEvent.HAND_LOWER, STUDENT, user_id="student_2")

        with pytest.raises(AppError):
            await live_session_service.authorize_control(GROUP, STUDENT, message)

    async def test_no_channel(self, registry: InMemoryRegistry, fast_cfg):
        service = LiveSessionService(registry=registry, cfg=fast_cfg)  # type: ignore[arg-type]

        with pytest.raises(AppError) as exc_info:
            await service.publish_control(GROUP, HOST, make_message(ControlEvent.WHITEBOARD_CLEAR, HOST))

        assert exc_info.value.status_code == 503

    @pytest.mark.parametrize(
        "status",
        [
            pytest.param(None, id="never-requested"),
            pytest.param(AdmissionStatus.PENDING, id="pending"),
            pytest.param(AdmissionStatus.REJECTED, id="rejected"),
        ],
    )
    async def test_outsider_cannot_relay(
        self,
        live_session_service: LiveSessionService,
        registry: InMemoryRegistry,
        channel: LiveControlChannel,
        status: AdmissionStatus | None,
        monkeypatch: pytest.MonkeyPatch,
    ):
        # Arrange
        if status is not None:
            registry.put(GROUP, "outsider", status)
        message = make_message(ControlEvent.SCREEN_SHARE_STARTED, "outsider", user_id="outsider")

        monkeypatch.setattr(channel, "publish", AsyncMock(return_value=0))

        # Act
        with pytest.raises(AppError) as exc_info:
            await live_session_service.publish_control(GROUP, "outsider", message)

        # Assert
        channel.publish.assert_not_awaited()
        assert exc_info.value.errcode == AppErrorCode.E_CONTROL_NOT_ALLOWED
        assert exc_info.value.status_code == 403

    async def test_require_participant(self, live_session_service: LiveSessionService):
        assert await live_session_service.require_participant(GROUP, HOST) is True
        assert await live_session_service.require_participant(GROUP, STUDENT) is False
        with pytest.raises(AppError):
            await live_session_service.require_participant(GROUP, "outsider")

    async def test_demotion_is_recorded(self, live_session_service: LiveSessionService, registry: InMemoryRegistry):
        # Act
        await live_session_service.publish_control(
            GROUP, HOST, make_message(ControlEvent.DEMOTE_SPEAKER, HOST, user_id=STUDENT)
        )
        demoted = await registry.get_request(GROUP, STUDENT)
        await live_session_service.publish_control(
            GROUP, HOST, make_message(ControlEvent.PROMOTE_SPEAKER, HOST, user_id=STUDENT)
        )
        promoted = await registry.get_request(GROUP, STUDENT)

        # Assert
        assert demoted is not None and demoted.listen_only is True
        assert promoted is not None and promoted.listen_only is False


class TestMintToken:
    async def test_requires_live_host(self, live_session_service: LiveSessionService):
        with pytest.raises(AppError) as exc_info:
            await live_session_service.mint_token(GROUP, STUDENT)

        assert exc_info.value.errcode == AppErrorCode.E_HOST_NOT_ACTIVE

    async def test_host_token(self, live_session_service: LiveSessionService, fast_cfg):
        await live_session_service.start_session(GROUP, HOST)

        token = await live_session_service.mint_token(GROUP, HOST, "Hana")

        assert token.is_host is True
        assert token.can_publish is True
        assert token.capabilities.can_share_screen is True
        assert token.token == f"DEMO_RTC_TOKEN::{HOST}::{GROUP}::pub"
        assert token.url == fast_cfg.LIVEKIT_URL

    async def test_unadmitted_student_refused(self, live_session_service: LiveSessionService):
        await live_session_service.start_session(GROUP, HOST)

        with pytest.raises(AppError) as exc_info:
            await live_session_service.mint_token(GROUP, STUDENT)

        assert exc_info.value.status_code == 403

    async def test_approved_student_token(self, live_session_service: LiveSessionService, registry: InMemoryRegistry):
        await live_session_service.start_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.APPROVED)

        token = await live_session_service.mint_token(GROUP, STUDENT)

        assert token.is_host is False
        assert token.can_publish is True
        assert token.capabilities.can_share_screen is False

    async def test_demoted_student_token_only_subscribes(
        self, live_session_service: LiveSessionService, registry: InMemoryRegistry
    ):
        # Arrange
        await live_session_service.start_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.APPROVED)
        await registry.set_listen_only(GROUP, STUDENT, True)

        # Act
        token = await live_session_service.mint_token(GROUP, STUDENT)

        # Assert
        assert token.can_publish is False
        assert token.capabilities.can_transmit_audio is False
        assert token.token.endswith("::sub")
