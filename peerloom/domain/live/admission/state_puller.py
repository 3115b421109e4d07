"""
Eventually consistent state puller.

Push notifications and periodic polls both end up in the same place: a push
only wakes the puller early, and every observation goes through one reducer.
Duplicate or reordered notifications therefore cannot produce duplicate
transitions.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, Generic, TypeVar

from loguru import logger

S = TypeVar("S")
O = TypeVar("O")  # noqa: E741

WakeupSource = Callable[[], AbstractAsyncContextManager[AsyncIterator[Any]]]


class StatePuller(Generic[S, O]):
    """
    Drive a state forward from polled observations.

    Args:
        initial: Starting state
        fetch: Reads the current observation from the source of truth
        reduce: `(state, observation) -> state`, must be idempotent
        interval: Poll interval in seconds
        wakeups: Optional push subscription; each accepted delivery triggers an immediate fetch
        accept: Filter on push deliveries
        is_terminal: Stop once a terminal state is reached
    """

    def __init__(
        self,
        *,
        initial: S,
        fetch: Callable[[], Awaitable[O]],
        reduce: Callable[[S, O], S],
        interval: float,
        wakeups: WakeupSource | None = None,
        accept: Callable[[Any], bool] | None = None,
        is_terminal: Callable[[S], bool] | None = None,
        name: str = "state-puller",
    ):
        self._state = initial
        self._fetch = fetch
        self._reduce = reduce
        self._interval = interval
        self._wakeups = wakeups
        self._accept = accept or (lambda _: True)
        self._is_terminal = is_terminal or (lambda _: False)
        self.name = name

    @property
    def state(self) -> S:
        return self._state

    async def _pump(self, deliveries: AsyncIterator[Any], wake: asyncio.Event) -> None:
        try:
            async for delivery in deliveries:
                if self._accept(delivery):
                    wake.set()
        except Exception as e:
            # Polling keeps going without the push half
            logger.warning("{} push subscription failed: {}", self.name, e)

    async def _observe(self) -> S | None:
        """Fetch and reduce once. Returns the new state if it changed."""
        try:
            observation = await self._fetch()
        except Exception as e:
            # Treated as "nothing new yet"; the next tick retries
            logger.warning("{} fetch failed: {}", self.name, e)
            return None

        new_state = self._reduce(self._state, observation)
        if new_state == self._state:
            return None

        logger.debug("{} {} -> {}", self.name, self._state, new_state)
        self._state = new_state
        return new_state

    async def stream(self) -> AsyncIterator[S]:
        """Yield each state change until a terminal state is reached."""
        wake = asyncio.Event()
        pump: asyncio.Task | None = None

        async with contextlib.AsyncExitStack() as stack:
            if self._wakeups is not None:
                try:
                    deliveries = await stack.enter_async_context(self._wakeups())
                except Exception as e:
                    logger.warning("{} push subscription unavailable, polling only: {}", self.name, e)
                else:
                    pump = asyncio.create_task(self._pump(deliveries, wake), name=f"{self.name}-push")

            try:
                while not self._is_terminal(self._state):
                    wake.clear()
                    changed = await self._observe()
                    if changed is not None:
                        yield changed
                        continue

                    with contextlib.suppress(asyncio.TimeoutError):
                        await asyncio.wait_for(wake.wait(), timeout=self._interval)
            finally:
                if pump is not None:
                    pump.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await pump

    async def wait_for_change(self) -> S:
        """Return the first state change, or the current state if it is already terminal."""
        async with contextlib.aclosing(self.stream()) as changes:
            async for state in changes:
                return state
        return self._state
