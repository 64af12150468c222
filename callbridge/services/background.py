"""
Fire-and-forget task tracking for best-effort side calls.

Telemetry and notifications must never hold up a call, so their requests run
as detached tasks. The tracker keeps a reference to each task until it
finishes and logs any exception it raised.
"""

import asyncio
import logging
from typing import Awaitable, List, Set

from callbridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class BackgroundTasks:
    """Owns detached tasks and reports their failures."""

    def __init__(self, name: str):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"{self.name} task failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def tasks(self) -> List[asyncio.Task]:
        return list(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
