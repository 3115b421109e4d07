"""Batching of local whiteboard strokes."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from loguru import logger

from peerloom.app_config import get_app_environ_config

from .control_messages import DrawCommand

FlushCallback = Callable[[list[DrawCommand]], Awaitable[None]]


class WhiteboardBatcher:
    """
    Buffers strokes and hands them to `send` as one batch per interval.

    The periodic flush runs as an asyncio task started by `start()` and
    cancelled by `aclose()`, which also flushes what is left.
    """

    def __init__(self, send: FlushCallback, interval: float | None = None):
        self._send = send
        if interval is None:
            interval = get_app_environ_config().WHITEBOARD_FLUSH_INTERVAL_SECONDS
        self._interval = interval
        self._pending: list[DrawCommand] = []
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add(self, command: DrawCommand) -> None:
        self._pending.append(command)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="whiteboard-flush")

    async def flush(self) -> int:
        if not self._pending:
            return 0
        batch, self._pending = self._pending, []
        try:
            await self._send(batch)
        except Exception as e:
            # Best effort, like every channel send
            logger.warning("Whiteboard batch of {} strokes not sent: {}", len(batch), e)
            return 0
        return len(batch)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.flush()

    async def aclose(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.flush()
