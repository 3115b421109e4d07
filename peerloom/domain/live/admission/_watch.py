"""Admission watching: follow a user from first check until entry."""

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from peerloom.domain.live.registry.registry_models import RegistryChange
from peerloom.schemas import AdmissionState

from ._resolve import ResolveOperations, next_state
from .admission_models import AdmissionDecision, AdmissionSnapshot, AdmissionUpdate
from .admission_state_machine import AdmissionStateMachine
from .state_puller import StatePuller

_MESSAGES = {
    AdmissionState.WAITING_FOR_HOST: "Waiting for the host to start the session",
    AdmissionState.MANUAL_REQUEST_READY: "The session is live. Request to join.",
    AdmissionState.AUTO_JOINING: "Host is live. Joining...",
    AdmissionState.REQUEST_PENDING: "Waiting for the host to let you in",
    AdmissionState.REQUEST_REJECTED: "Request denied",
    AdmissionState.APPROVED: "Welcome! Entering the session",
}

_DIRECT_ENTRY_SOURCES = {
    AdmissionState.CHECKING_HOST_ACTIVE,
    AdmissionState.WAITING_FOR_HOST,
    AdmissionState.AUTO_JOINING,
}


class WatchOperations(ResolveOperations):
    """Watch a user's admission until it is approved."""

    def _update(
        self,
        decision: AdmissionDecision | None,
        state: AdmissionState,
        previous: AdmissionState,
        *,
        group_id: str,
        user_id: str,
        snapshot: AdmissionSnapshot | None = None,
    ) -> AdmissionUpdate:
        update = AdmissionUpdate(
            group_id=group_id,
            user_id=user_id,
            state=state,
            request=decision.request if decision else (snapshot.request if snapshot else None),
            auto_approved=decision.auto_approved if decision else False,
            message=_MESSAGES.get(state),
        )

        if state == AdmissionState.APPROVED:
            update.entry_delay_seconds = (
                self.cfg.IMMEDIATE_ENTRY_DELAY_SECONDS
                if previous in _DIRECT_ENTRY_SOURCES
                else self.cfg.WELCOME_DELAY_SECONDS
            )
        elif state == AdmissionState.REQUEST_REJECTED and previous == AdmissionState.REQUEST_PENDING:
            update.leave_delay_seconds = self.cfg.LEAVE_REDIRECT_DELAY_SECONDS
            update.message = "The host denied your request"

        return update

    def _puller(
        self,
        group_id: str,
        user_id: str,
        state: AdmissionState,
        auto_join: bool,
        latest: dict[str, AdmissionSnapshot],
    ) -> StatePuller[AdmissionState, AdmissionSnapshot]:
        waiting_for_host = state == AdmissionState.WAITING_FOR_HOST

        async def fetch() -> AdmissionSnapshot:
            snapshot = await self.snapshot(group_id, user_id)
            latest["snapshot"] = snapshot
            return snapshot

        def accept(change: RegistryChange) -> bool:
            if waiting_for_host:
                return change.is_host_marker_insert()
            return change.user_id == user_id or change.type == "DELETE" or change.is_host_marker_insert()

        return StatePuller(
            initial=state,
            fetch=fetch,
            reduce=lambda current, snapshot: next_state(current, snapshot, auto_join=auto_join),
            interval=(
                self.cfg.HOST_POLL_INTERVAL_SECONDS if waiting_for_host else self.cfg.REQUEST_POLL_INTERVAL_SECONDS
            ),
            wakeups=(lambda: self.feed.subscribe(group_id)) if self.feed is not None else None,
            accept=accept,
            is_terminal=AdmissionStateMachine.is_terminal,
            name=f"admission:{group_id}:{user_id}",
        )

    async def watch(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None = None,
        *,
        auto_join: bool | None = None,
    ) -> AsyncIterator[AdmissionUpdate]:
        """
        Yield admission updates until the user is APPROVED.

        The first update is the initial resolution. Each later update is a
        real transition: an approval is reported exactly once.
        """
        auto_join = self.cfg.AUTO_ADMIT_WHEN_HOST_ACTIVE if auto_join is None else auto_join

        decision = await self.resolve(
            group_id,
            user_id,
            user_name,
            backoff=self.cfg.CONNECT_READ_BACKOFF_SECONDS,
            auto_join=auto_join,
        )
        state = decision.state
        yield self._update(
            decision, state, AdmissionState.CHECKING_HOST_ACTIVE, group_id=group_id, user_id=user_id
        )

        while not AdmissionStateMachine.is_terminal(state):
            if state == AdmissionState.AUTO_JOINING:
                await asyncio.sleep(self.cfg.AUTO_JOIN_DELAY_SECONDS)
                decision = await self.resolve(group_id, user_id, user_name, auto_join=auto_join)
                if decision.state == state:
                    await asyncio.sleep(self.cfg.HOST_POLL_INTERVAL_SECONDS)
                    continue
                if not AdmissionStateMachine.can_transition(state, decision.state):
                    logger.warning("Ignoring admission {} -> {} for user {}", state, decision.state, user_id)
                    continue

                previous, state = state, decision.state
                yield self._update(decision, state, previous, group_id=group_id, user_id=user_id)
                continue

            latest: dict[str, AdmissionSnapshot] = {}
            puller = self._puller(group_id, user_id, state, auto_join, latest)
            new_state = await puller.wait_for_change()

            previous, state = state, new_state
            yield self._update(
                None, state, previous, group_id=group_id, user_id=user_id, snapshot=latest.get("snapshot")
            )
