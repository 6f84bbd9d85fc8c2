"""Supervisor for fire-and-forget background work."""
from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from loguru import logger


class BackgroundDispatcher:
    """Run coroutines as detached tasks whose outcome is only ever logged.

    Holds a strong reference to each task until it finishes so the event loop
    cannot garbage-collect in-flight deliveries.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Background task failed", task=task.get_name())

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, has settled."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
