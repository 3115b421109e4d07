"""
Headless live session participant.

Runs admission, enters the session once approved, applies control messages
received on the group channel to its `ParticipantState` and executes the
resulting local effects against an `RtcTransport`.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, aclosing

from loguru import logger

from peerloom.app_config import AppEnvironConfig, get_app_environ_config
from peerloom.domain.live.admission.admission_domain import AdmissionService
from peerloom.domain.live.admission.admission_models import AdmissionUpdate
from peerloom.domain.live.control.control_channel import LiveControlChannel
from peerloom.domain.live.control.control_dispatcher import ControlDispatcher, DispatchResult, LocalEffect, Notice
from peerloom.domain.live.control.control_messages import ControlEvent, ControlMessage, DrawCommand, make_message
from peerloom.domain.live.control.media_policy import (
    MediaDecision,
    MediaKind,
    ScreenShareAction,
    decide_media_toggle,
    decide_screen_share,
)
from peerloom.domain.live.control.participant_state import ConnectionState, ParticipantState
from peerloom.domain.live.control.whiteboard import WhiteboardBatcher
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.schemas import AdmissionState
from peerloom.shared.domain.timeutils import utc_now_ms

from .live_session_domain import LiveSessionService
from .rtc_transport import RtcEvent, RtcTransport, TrackKind
from .session_models import MediaToken

_AV_TRACKS = (TrackKind.MIC, TrackKind.CAMERA)


class LiveSessionClient:
    """One participant's connection to a group's live session."""

    def __init__(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None = None,
        *,
        admission: AdmissionService,
        sessions: LiveSessionService,
        channel: LiveControlChannel,
        transport: RtcTransport,
        attendance: AttendanceService | None = None,
        on_admission: Callable[[AdmissionUpdate], None] | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self.group_id = group_id
        self.user_id = user_id
        self.user_name = user_name
        self.admission = admission
        self.sessions = sessions
        self.channel = channel
        self.transport = transport
        self.attendance = attendance
        self.on_admission = on_admission
        self.cfg = cfg or get_app_environ_config()

        self.admission_state = AdmissionState.CHECKING_HOST_ACTIVE
        self.state: ParticipantState | None = None
        self.token: MediaToken | None = None
        self.notices: list[Notice] = []

        self._dispatcher: ControlDispatcher | None = None
        self._whiteboard = WhiteboardBatcher(self._send_whiteboard_batch, self.cfg.WHITEBOARD_FLUSH_INTERVAL_SECONDS)
        self._stack = AsyncExitStack()
        self._listener: asyncio.Task | None = None
        self._screen_share_requested = False
        self._av_published = False
        self._joined = False
        self._left = False

    @property
    def joined(self) -> bool:
        return self._joined

    def _notify(self, message: str, kind: str = "info") -> None:
        self.notices.append(Notice(message=message, kind=kind))

    # ==================== CONNECT ====================

    async def _admit(self) -> AdmissionUpdate | None:
        async with aclosing(self.admission.watch(self.group_id, self.user_id, self.user_name)) as updates:
            async for update in updates:
                self.admission_state = update.state
                if self.on_admission is not None:
                    self.on_admission(update)
                if update.state == AdmissionState.APPROVED:
                    return update
        return None

    async def connect(self) -> AdmissionUpdate | None:
        """
        Wait for admission, then enter the session.

        Blocks while the user waits for the host or for a decision on a
        join request. If the host marker is gone once the welcome delay has
        passed, the user goes back to waiting.

        Returns:
            The approving admission update, or None if watching ended first
        """
        while not self._joined:
            update = await self._admit()
            if update is None:
                return None

            if update.entry_delay_seconds:
                await asyncio.sleep(update.entry_delay_seconds)

            marker = await self.sessions.registry.get_active_marker(self.group_id)
            if marker is None:
                logger.info("Host of group {} left before user {} entered", self.group_id, self.user_id)
                self.admission_state = AdmissionState.WAITING_FOR_HOST
                continue

            await self._setup(marker.user_id, update)
            return update
        return None

    async def request_to_join(self) -> bool:
        """Submit a join request from MANUAL_REQUEST_READY or REQUEST_REJECTED."""
        result = await self.admission.submit_join_request(self.group_id, self.user_id, self.user_name)
        if result.already_pending:
            self._notify("Your request is already waiting for the host")
        return not result.already_pending

    async def _setup(self, host_id: str, update: AdmissionUpdate) -> None:
        state = ParticipantState(user_id=self.user_id, host_id=host_id, user_name=self.user_name)
        if update.auto_approved:
            state.promoted.add(self.user_id)
        if state.is_host:
            state.can_present = True
        self.state = state
        self._dispatcher = ControlDispatcher(state)
        self._joined = True

        messages = await self._stack.enter_async_context(self.channel.subscribe(self.group_id))
        self._listener = asyncio.create_task(self._listen(messages), name=f"live-control-{self.user_id}")

        try:
            self.token = await self.sessions.mint_token(self.group_id, self.user_id, self.user_name)
        except Exception as e:
            logger.warning("No media token for user {} in group {}: {}", self.user_id, self.group_id, e)
            self._notify("Could not get media access, joining without audio and video", "warning")

        self.transport.on(RtcEvent.USER_PUBLISHED, self._on_user_published)
        self.transport.on(RtcEvent.USER_UNPUBLISHED, self._on_user_unpublished)
        self.transport.on(RtcEvent.USER_JOINED, self._on_user_joined)
        self.transport.on(RtcEvent.USER_LEFT, self._on_user_left)
        self.transport.on(RtcEvent.CONNECTION_STATE_CHANGE, self._on_connection_state_change)

        state.connection_state = ConnectionState.CONNECTING
        try:
            await self.transport.join(
                room=self.group_id,
                identity=self.user_id,
                token=self.token.token if self.token else None,
                url=self.token.url if self.token else None,
            )
        except Exception as e:
            logger.error("User {} failed to join RTC room {}: {}", self.user_id, self.group_id, e)
            state.connection_state = ConnectionState.DISCONNECTED
            state.critical_error = f"Could not join the session: {e}"
            return
        state.connection_state = ConnectionState.CONNECTED

        if self.token is not None and self.token.can_publish:
            await self._publish_av()

        self._whiteboard.start()
        logger.info("User {} entered group {} as {}", self.user_id, self.group_id, state.role)

    async def _publish_av(self) -> None:
        """Publish mic and camera tracks, starting disabled. No-op once published."""
        if self._av_published:
            return
        try:
            await self.transport.publish(_AV_TRACKS)
            for kind in _AV_TRACKS:
                await self.transport.set_track_enabled(kind, False)
            self._av_published = True
        except Exception as e:
            logger.warning("User {} could not publish tracks: {}", self.user_id, e)
            self._notify("Could not access microphone or camera", "warning")

    # ==================== CHANNEL ====================

    async def _listen(self, messages: AsyncIterator[ControlMessage]) -> None:
        async for message in messages:
            try:
                await self.apply(message)
            except Exception:
                logger.exception("Failed to apply {} for user {}", message.event, self.user_id)
            if self._left:
                break

    async def apply(self, message: ControlMessage) -> DispatchResult:
        """Apply a received control message and run its local effects."""
        result = self._dispatcher.dispatch(message)
        self.notices.extend(result.notices)
        for effect in result.effects:
            await self._execute(effect)
        return result

    async def _execute(self, effect: LocalEffect) -> None:
        try:
            if effect == LocalEffect.FORCE_MIC_OFF:
                await self.transport.set_track_enabled(TrackKind.MIC, False)
            elif effect == LocalEffect.FORCE_CAMERA_OFF:
                await self.transport.set_track_enabled(TrackKind.CAMERA, False)
            elif effect == LocalEffect.PUBLISH_TRACKS:
                await self._publish_av()
            elif effect == LocalEffect.UNPUBLISH_TRACKS:
                await self.transport.unpublish(_AV_TRACKS)
                self._av_published = False
            elif effect == LocalEffect.STOP_SCREEN_SHARE:
                await self.transport.unpublish([TrackKind.SCREEN])
                await self._send(ControlEvent.SCREEN_SHARE_STOPPED, user_id=self.user_id, user_name=self.user_name)
            elif effect == LocalEffect.LEAVE_SESSION:
                await self.leave()
        except Exception as e:
            logger.warning("Local effect {} failed for user {}: {}", effect, self.user_id, e)

    async def _send(self, event: ControlEvent, **fields) -> bool:
        """Best-effort broadcast; a failed send is logged and reported as False."""
        message = make_message(event, self.user_id, **fields)
        try:
            await self.channel.publish(self.group_id, message)
        except Exception as e:
            logger.warning("Failed to send {} to group {}: {}", event, self.group_id, e)
            return False
        return True

    # ==================== MEDIA ====================

    async def toggle_media(self, kind: MediaKind) -> MediaDecision:
        """Flip the local mic or camera if the media policy allows it."""
        state = self.state
        enabled = state.is_mic_on if kind == MediaKind.MIC else state.is_camera_on
        decision = decide_media_toggle(
            kind,
            enable=not enabled,
            user_id=self.user_id,
            is_host=state.is_host,
            promoted=state.promoted,
            policy=state.policy,
        )
        if not decision.allowed:
            if decision.notice:
                self._notify(decision.notice, "lock")
            if decision.request_media:
                await self._send(
                    ControlEvent.MEDIA_REQUEST,
                    room_id=self.group_id,
                    user_id=self.user_id,
                    user_name=self.user_name,
                    media_type=kind.value,
                )
            return decision

        try:
            await self.transport.set_track_enabled(TrackKind(kind.value), decision.enabled)
        except Exception as e:
            logger.warning("User {} could not switch {}: {}", self.user_id, kind, e)
            self._notify(f"Could not switch {kind}", "warning")
            return decision

        if kind == MediaKind.MIC:
            state.is_mic_on = decision.enabled
            await self._send(ControlEvent.STUDENT_MIC_CHANGE, user_id=self.user_id, is_mic_on=decision.enabled)
        else:
            state.is_camera_on = decision.enabled
            await self._send(ControlEvent.CAM_CHANGE, user_id=self.user_id, is_camera_on=decision.enabled)
        return decision

    async def toggle_screen_share(self) -> ScreenShareAction:
        state = self.state
        action = decide_screen_share(
            user_id=self.user_id,
            is_host=state.is_host,
            can_present=state.can_present,
            is_sharing=state.is_screen_sharing,
            presenter=state.presenter.holder,
            has_pending_request=self._screen_share_requested,
        )

        if action == ScreenShareAction.DENY_PRESENTER_BUSY:
            self._notify("Someone else is already presenting")
        elif action == ScreenShareAction.ALREADY_REQUESTED:
            self._notify("Screen share request already sent")
        elif action == ScreenShareAction.REQUEST:
            if await self._send(
                ControlEvent.SCREEN_SHARE_REQUEST, student_id=self.user_id, student_name=self.user_name
            ):
                self._screen_share_requested = True
                self._notify("Screen share request sent to host")
        elif action == ScreenShareAction.START:
            try:
                await self.transport.publish([TrackKind.SCREEN])
            except Exception as e:
                logger.warning("User {} could not start screen share: {}", self.user_id, e)
                self._notify("Could not start screen share", "warning")
                return action
            state.presenter.acquire(self.user_id)
            state.is_screen_sharing = True
            await self._send(ControlEvent.SCREEN_SHARE_STARTED, user_id=self.user_id, user_name=self.user_name)
        else:
            await self._execute(LocalEffect.STOP_SCREEN_SHARE)
            state.presenter.release(self.user_id)
            state.is_screen_sharing = False
        return action

    # ==================== HANDS ====================

    async def raise_hand(self) -> bool:
        at = utc_now_ms()
        if not self.state.raised_hands.raise_hand(self.user_id, self.user_name, at):
            return False
        await self._send(
            ControlEvent.HAND_RAISE, user_id=self.user_id, user_name=self.user_name, action="raise", sent_at=at
        )
        return True

    async def lower_hand(self, user_id: str | None = None) -> bool:
        """Lower your own hand, or anyone's as the host."""
        user_id = user_id or self.user_id
        if user_id != self.user_id and not self.state.is_host:
            self._notify("Only the host can lower other hands")
            return False

        at = utc_now_ms()
        if not self.state.raised_hands.lower_hand(user_id, at):
            return False
        await self._send(ControlEvent.HAND_LOWER, user_id=user_id, sent_at=at)
        return True

    # ==================== HOST ACTIONS ====================

    def _require_host(self, action: str) -> bool:
        if self.state.is_host:
            return True
        self._notify(f"Only the host can {action}")
        return False

    async def mute_all(self, hard_lock: bool = False) -> bool:
        if not self._require_host("mute everyone"):
            return False
        self.state.policy = self.state.policy.with_mic_lock(True, hard_lock)
        return await self._send(ControlEvent.MUTE_ALL, locked=True, hard_lock=hard_lock)

    async def unmute_all(self) -> bool:
        if not self._require_host("unmute everyone"):
            return False
        self.state.policy = self.state.policy.with_mic_lock(False, False)
        return await self._send(ControlEvent.UNMUTE_ALL, locked=False, hard_lock=False)

    async def disable_cameras(self, hard_lock: bool = False) -> bool:
        if not self._require_host("disable cameras"):
            return False
        self.state.policy = self.state.policy.with_camera_lock(True, hard_lock)
        return await self._send(ControlEvent.DISABLE_CAMERAS, locked=True, hard_lock=hard_lock)

    async def enable_cameras(self) -> bool:
        if not self._require_host("enable cameras"):
            return False
        self.state.policy = self.state.policy.with_camera_lock(False, False)
        return await self._send(ControlEvent.ENABLE_CAMERAS, locked=False, hard_lock=False)

    async def set_spotlight(self, user_id: str | None) -> bool:
        """Spotlight a participant, or clear the spotlight with None."""
        if not self._require_host("spotlight participants"):
            return False
        self.state.spotlight.override(user_id)
        self.state.spotlight_immune = user_id is not None
        return await self._send(
            ControlEvent.SPOTLIGHT, spotlight_user_id=user_id, active=user_id is not None, immune=user_id is not None
        )

    async def approve_screen_share(self, student_id: str) -> bool:
        if not self._require_host("approve screen sharing"):
            return False
        self.state.screen_share_requests.pop(student_id, None)
        return await self._send(ControlEvent.SCREEN_SHARE_APPROVED, student_id=student_id)

    async def reject_screen_share(self, student_id: str) -> bool:
        if not self._require_host("reject screen sharing"):
            return False
        self.state.screen_share_requests.pop(student_id, None)
        return await self._send(ControlEvent.SCREEN_SHARE_REJECTED, student_id=student_id)

    async def force_stop_screen_share(self, user_id: str) -> bool:
        if not self._require_host("stop screen sharing"):
            return False
        if self.state.presenter.holder == user_id:
            self.state.presenter.override(None)
        return await self._send(ControlEvent.FORCE_STOP_SCREENSHARE, user_id=user_id)

    async def promote(self, user_id: str, user_name: str | None = None) -> bool:
        if not self._require_host("promote speakers"):
            return False
        self.state.promoted.add(user_id)
        self.state.media_requests = [r for r in self.state.media_requests if r.user_id != user_id]
        return await self._send(ControlEvent.PROMOTE_SPEAKER, user_id=user_id, user_name=user_name)

    async def demote(self, user_id: str, user_name: str | None = None) -> bool:
        if not self._require_host("demote speakers"):
            return False
        self.state.promoted.discard(user_id)
        return await self._send(ControlEvent.DEMOTE_SPEAKER, user_id=user_id, user_name=user_name)

    async def end_meeting(self) -> bool:
        """End the session for everyone and leave."""
        if not self._require_host("end the meeting"):
            return False
        self.state.intentional_leave = True
        await self.sessions.end_session(self.group_id, self.user_id)
        await self.leave()
        return True

    # ==================== WHITEBOARD ====================

    async def toggle_whiteboard(self) -> bool:
        state = self.state
        if not state.capabilities().can_draw_whiteboard:
            self._notify("Only the host or a presenter can use the whiteboard")
            return False
        state.whiteboard_active = not state.whiteboard_active
        return await self._send(
            ControlEvent.WHITEBOARD_TOGGLE,
            user_id=self.user_id,
            active=state.whiteboard_active,
            drawing_commands=state.whiteboard_commands if state.whiteboard_active else [],
        )

    def draw(self, command: DrawCommand) -> bool:
        """Queue a stroke for the next whiteboard batch."""
        state = self.state
        if not state.whiteboard_active or not state.capabilities().can_draw_whiteboard:
            return False
        state.whiteboard_commands.append(command)
        self._whiteboard.add(command)
        return True

    async def clear_whiteboard(self) -> bool:
        if not self.state.capabilities().can_draw_whiteboard:
            return False
        self.state.whiteboard_commands = []
        return await self._send(ControlEvent.WHITEBOARD_CLEAR, user_id=self.user_id)

    async def _send_whiteboard_batch(self, commands: list[DrawCommand]) -> None:
        message = make_message(ControlEvent.WHITEBOARD_BATCH, self.user_id, user_id=self.user_id, commands=commands)
        await self.channel.publish(self.group_id, message)

    # ==================== RTC CALLBACKS ====================

    def _on_user_published(self, user_id: str, user_name: str | None = None, kind: TrackKind | None = None) -> None:
        if kind == TrackKind.SCREEN:
            self.state.presenter.acquire(user_id)
        if self.attendance is not None:
            self.attendance.record(self.group_id, user_id, user_name, host_id=self.state.host_id)

    def _on_user_unpublished(self, user_id: str, kind: TrackKind | None = None) -> None:
        if kind == TrackKind.SCREEN:
            self.state.presenter.release(user_id)

    def _on_user_joined(self, user_id: str, user_name: str | None = None) -> None:
        logger.debug("{} joined RTC room {}", user_name or user_id, self.group_id)

    def _on_user_left(self, user_id: str) -> None:
        state = self.state
        state.raised_hands.forget(user_id)
        state.promoted.discard(user_id)
        state.presenter.release(user_id)
        if state.spotlight.holder == user_id:
            state.spotlight.override(None)
            state.spotlight_immune = False
        state.peer_mic.pop(user_id, None)
        state.peer_camera.pop(user_id, None)
        state.screen_share_requests.pop(user_id, None)

    def _on_connection_state_change(self, new_state: ConnectionState | str) -> None:
        state = self.state
        state.connection_state = ConnectionState(new_state)
        if state.connection_state == ConnectionState.RECONNECTING:
            self._notify("Reconnecting...", "warning")
        elif state.connection_state == ConnectionState.DISCONNECTED and not state.intentional_leave:
            logger.warning("User {} lost connection to group {}", self.user_id, self.group_id)
            state.critical_error = "Connection to the session was lost"

    # ==================== LEAVE ====================

    async def leave(self) -> None:
        """Leave the session. Safe to call more than once."""
        if self._left:
            return
        self._left = True
        if self.state is not None:
            self.state.intentional_leave = True

        listener = self._listener
        if listener is not None and listener is not asyncio.current_task():
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener

        await self._whiteboard.aclose()
        await self._stack.aclose()

        if self._joined:
            try:
                await self.transport.leave()
            except Exception as e:
                logger.warning("User {} did not leave RTC room {} cleanly: {}", self.user_id, self.group_id, e)
            self.state.connection_state = ConnectionState.DISCONNECTED
        logger.info("User {} left group {}", self.user_id, self.group_id)
