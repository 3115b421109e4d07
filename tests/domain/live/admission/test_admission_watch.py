"""Tests for watching a user's admission through to entry."""

import asyncio
from contextlib import aclosing

from peerloom.app_config import AppEnvironConfig
from peerloom.domain.live.admission.admission_domain import AdmissionService
from peerloom.schemas import AdmissionState, AdmissionStatus
from tests.fixtures.registry_fixtures import InMemoryRegistry

GROUP = "group_1"
HOST = "host_1"
STUDENT = "student_1"


async def next_update(updates, timeout: float = 2):
    return await asyncio.wait_for(anext(updates), timeout=timeout)


class TestWatchHostGating:
    async def test_waiting_student_auto_joins_when_host_starts(
        self,
        admission_service: AdmissionService,
        registry: InMemoryRegistry,
        fast_cfg: AppEnvironConfig,
    ):
        """Student arrives before the host and enters once the host goes live."""
        async with aclosing(admission_service.watch(GROUP, STUDENT, "Sam")) as updates:
            # Arrange
            first = await next_update(updates)
            assert first.state == AdmissionState.WAITING_FOR_HOST

            # Act
            await registry.start_host_session(GROUP, HOST, "Hana")
            joining = await next_update(updates)
            approved = await next_update(updates)

        # Assert
        assert joining.state == AdmissionState.AUTO_JOINING
        assert approved.state == AdmissionState.APPROVED
        assert approved.auto_approved is True
        assert approved.entry_delay_seconds == fast_cfg.IMMEDIATE_ENTRY_DELAY_SECONDS
        assert (await registry.get_request(GROUP, STUDENT)).status == AdmissionStatus.APPROVED

    async def test_host_already_live_approves_immediately(
        self, admission_service: AdmissionService, registry: InMemoryRegistry
    ):
        await registry.start_host_session(GROUP, HOST)

        async with aclosing(admission_service.watch(GROUP, STUDENT)) as updates:
            seen = [update async for update in updates]

        assert [u.state for u in seen] == [AdmissionState.APPROVED]

    async def test_host_watching_own_session(self, admission_service: AdmissionService, registry: InMemoryRegistry):
        await registry.start_host_session(GROUP, HOST)

        async with aclosing(admission_service.watch(GROUP, HOST)) as updates:
            seen = [update async for update in updates]

        assert len(seen) == 1
        assert seen[0].state == AdmissionState.APPROVED
        assert seen[0].auto_approved is False

    async def test_manual_mode_waits_for_request(
        self, admission_service: AdmissionService, registry: InMemoryRegistry
    ):
        async with aclosing(admission_service.watch(GROUP, STUDENT, auto_join=False)) as updates:
            assert (await next_update(updates)).state == AdmissionState.WAITING_FOR_HOST

            await registry.start_host_session(GROUP, HOST)

            assert (await next_update(updates)).state == AdmissionState.MANUAL_REQUEST_READY


class TestWatchManualRequest:
    async def test_pending_request_approved_once(
        self,
        admission_service: AdmissionService,
        registry: InMemoryRegistry,
        fast_cfg: AppEnvironConfig,
    ):
        """Manual request, host approval, and exactly one APPROVED update."""
        # Arrange
        await registry.start_host_session(GROUP, HOST)

        async with aclosing(admission_service.watch(GROUP, STUDENT, "Sam", auto_join=False)) as updates:
            assert (await next_update(updates)).state == AdmissionState.MANUAL_REQUEST_READY

            result = await admission_service.submit_join_request(GROUP, STUDENT, "Sam")
            pending = await next_update(updates)
            assert pending.state == AdmissionState.REQUEST_PENDING

            # Act: approve twice, the second is a no-op on the registry
            await admission_service.approve(GROUP, HOST, result.record.request_id)
            await admission_service.approve(GROUP, HOST, result.record.request_id)
            approved = await next_update(updates)

            # Assert
            assert approved.state == AdmissionState.APPROVED
            assert approved.entry_delay_seconds == fast_cfg.WELCOME_DELAY_SECONDS
            remaining = [update async for update in updates]

        assert remaining == []

    async def test_rejection_carries_leave_delay(
        self,
        admission_service: AdmissionService,
        registry: InMemoryRegistry,
        fast_cfg: AppEnvironConfig,
    ):
        await registry.start_host_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.PENDING)

        async with aclosing(admission_service.watch(GROUP, STUDENT, auto_join=False)) as updates:
            assert (await next_update(updates)).state == AdmissionState.REQUEST_PENDING

            record = await registry.get_request(GROUP, STUDENT)
            await admission_service.reject(GROUP, HOST, record.request_id)
            rejected = await next_update(updates)

        assert rejected.state == AdmissionState.REQUEST_REJECTED
        assert rejected.leave_delay_seconds == fast_cfg.LEAVE_REDIRECT_DELAY_SECONDS
        assert rejected.message == "The host denied your request"

    async def test_session_end_sends_pending_user_back_to_waiting(
        self, admission_service: AdmissionService, registry: InMemoryRegistry
    ):
        await registry.start_host_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.PENDING)

        async with aclosing(admission_service.watch(GROUP, STUDENT, auto_join=False)) as updates:
            assert (await next_update(updates)).state == AdmissionState.REQUEST_PENDING

            await registry.end_host_session(GROUP, HOST)

            assert (await next_update(updates)).state == AdmissionState.WAITING_FOR_HOST

    async def test_polling_catches_changes_without_feed(
        self, registry: InMemoryRegistry, fast_cfg: AppEnvironConfig
    ):
        # Arrange: no channel and no change feed, polling only
        registry.feed = None
        service = AdmissionService(registry=registry, cfg=fast_cfg)  # type: ignore[arg-type]
        await registry.start_host_session(GROUP, HOST)
        registry.put(GROUP, STUDENT, AdmissionStatus.PENDING)

        async with aclosing(service.watch(GROUP, STUDENT, auto_join=False)) as updates:
            assert (await next_update(updates)).state == AdmissionState.REQUEST_PENDING

            # Act
            await registry.update_status_for_user(GROUP, STUDENT, AdmissionStatus.APPROVED)

            # Assert
            assert (await next_update(updates)).state == AdmissionState.APPROVED
