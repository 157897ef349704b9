# services/background.py
"""
Fire-and-forget writes (cache warming, resolution log, learning loop).

The caller gets its answer before these writes are durable. Failures are
visible in the log only. Two concurrent updates of the same cache key may
both read the old row and one of them is lost (last writer wins); the cache
is an optimization, user overrides stay authoritative regardless.
"""

import asyncio
import logging
from typing import Awaitable, Set

logger = logging.getLogger("background_writes")


class BackgroundWriter:
    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, coro: Awaitable, label: str) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(coro, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Awaitable, label: str) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning("⚠️ Best-effort write failed (%s): %s", label, e)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every write submitted so far (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
