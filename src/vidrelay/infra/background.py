"""Detached background jobs on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class AsyncioTaskSubmitter:
    """:class:`~vidrelay.core.protocols.TaskSubmitter` backed by :func:`asyncio.create_task`.

    Strong references to running tasks are kept until they finish so the
    event loop cannot garbage-collect them mid-flight.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job: Callable[[], Awaitable[None]], *, name: str) -> None:
        task = asyncio.create_task(self._run(job, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run(job: Callable[[], Awaitable[None]], name: str) -> None:
        try:
            await job()
        except asyncio.CancelledError:
            logger.debug("Background job %s cancelled", name)
            raise
        except Exception:
            logger.exception("Background job %s failed", name)

    async def join(self) -> None:
        """Wait for every job submitted so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
