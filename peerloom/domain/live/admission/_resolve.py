"""Admission resolution: turning registry reads into an admission state."""

from loguru import logger

from peerloom.domain.live.registry.registry_models import SubmitJoinResult
from peerloom.schemas import AdmissionState, AdmissionStatus
from peerloom.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseAdmissionService
from .admission_models import AdmissionDecision, AdmissionSnapshot
from .admission_state_machine import AdmissionStateMachine

_STATUS_TO_STATE = {
    AdmissionStatus.APPROVED: AdmissionState.APPROVED,
    AdmissionStatus.PENDING: AdmissionState.REQUEST_PENDING,
    AdmissionStatus.REJECTED: AdmissionState.REQUEST_REJECTED,
}


def target_state(snapshot: AdmissionSnapshot, auto_join: bool) -> AdmissionState:
    """The state a registry snapshot calls for, ignoring where the user is now."""
    if not snapshot.host_active:
        return AdmissionState.WAITING_FOR_HOST

    if snapshot.is_host:
        return AdmissionState.APPROVED

    if snapshot.request_status is not None:
        return _STATUS_TO_STATE[snapshot.request_status]

    return AdmissionState.AUTO_JOINING if auto_join else AdmissionState.MANUAL_REQUEST_READY


def next_state(current: AdmissionState, snapshot: AdmissionSnapshot, *, auto_join: bool) -> AdmissionState:
    """
    Idempotent reducer used while watching.

    Observations that would not be a valid transition leave the state alone,
    so repeated or stale observations are harmless.
    """
    target = target_state(snapshot, auto_join)
    if current == AdmissionState.WAITING_FOR_HOST and target == AdmissionState.APPROVED:
        # Entry after the host appears always goes through a fresh resolve
        target = AdmissionState.AUTO_JOINING

    if target == current or not AdmissionStateMachine.can_transition(current, target):
        return current
    return target


class ResolveOperations(BaseAdmissionService):
    """Resolve a connecting user's admission state."""

    async def snapshot(self, group_id: str, user_id: str, *, backoff: float | None = None) -> AdmissionSnapshot:
        backoff = self.cfg.ADMISSION_READ_BACKOFF_SECONDS if backoff is None else backoff

        marker = await self._read_with_retry(
            lambda: self.registry.get_active_marker(group_id),
            backoff=backoff,
            default=None,
            what=f"host marker for group {group_id}",
        )
        if marker is None:
            return AdmissionSnapshot(host_active=False)

        if marker.user_id == user_id:
            return AdmissionSnapshot(host_active=True, is_host=True)

        request = await self._read_with_retry(
            lambda: self.registry.get_request(group_id, user_id),
            backoff=backoff,
            default=None,
            what=f"request of user {user_id} in group {group_id}",
        )
        return AdmissionSnapshot(host_active=True, request=request)

    async def resolve(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None = None,
        *,
        backoff: float | None = None,
        auto_join: bool | None = None,
    ) -> AdmissionDecision:
        """
        Decide where a connecting user goes.

        With a live host and no request, the auto-join policy writes an
        `approved` row. If that write fails the user stays AUTO_JOINING and
        the caller tries again.
        """
        auto_join = self.cfg.AUTO_ADMIT_WHEN_HOST_ACTIVE if auto_join is None else auto_join
        snapshot = await self.snapshot(group_id, user_id, backoff=backoff)
        state = target_state(snapshot, auto_join)

        decision = AdmissionDecision(
            group_id=group_id,
            user_id=user_id,
            state=state,
            host_active=snapshot.host_active,
            is_host=snapshot.is_host,
            request=snapshot.request,
        )
        if state != AdmissionState.AUTO_JOINING:
            logger.info("Admission for user {} in group {}: {}", user_id, group_id, state)
            return decision

        try:
            record = await self.registry.upsert_request(group_id, user_id, user_name, AdmissionStatus.APPROVED)
        except Exception as e:
            logger.warning("Auto-approve failed for user {} in group {}: {}", user_id, group_id, e)
            return decision

        logger.info("Auto-approved user {} in group {}", user_id, group_id)
        return decision.model_copy(update={"state": AdmissionState.APPROVED, "request": record, "auto_approved": True})

    async def submit_join_request(self, group_id: str, user_id: str, user_name: str | None = None) -> SubmitJoinResult:
        """
        Ask the host to be let in.

        A pending request is left as is, a rejected one goes back to pending
        with a fresh timestamp, and a missing one is created.

        Raises:
            AppError: If the host is not live, or the caller is the host
        """
        marker = await self.registry.get_active_marker(group_id)
        if marker is None:
            raise AppError(
                errcode=AppErrorCode.E_HOST_NOT_ACTIVE,
                errmesg="The host has not started the session yet",
                status_code=HttpStatusCode.CONFLICT,
            )
        if marker.user_id == user_id:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="The host does not need to request to join",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        existing = await self.registry.get_request(group_id, user_id)
        if existing is not None and existing.status == AdmissionStatus.PENDING:
            return SubmitJoinResult(record=existing, already_pending=True)

        if existing is not None and existing.status == AdmissionStatus.APPROVED:
            return SubmitJoinResult(record=existing)

        record = await self.registry.upsert_request(group_id, user_id, user_name, AdmissionStatus.PENDING)
        logger.info("User {} requested to join group {}", user_id, group_id)
        return SubmitJoinResult(record=record)
