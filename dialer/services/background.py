"""Detached background work that must never block request handling."""
import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """
    Spawns fire-and-forget tasks on the running loop.

    Keeps a strong reference to each task until it finishes (the event loop
    only holds weak ones) and logs anything a task raises.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        """Schedule coro without awaiting it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"[BACKGROUND] Task cancelled - {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"[BACKGROUND] Task failed - {task.get_name()}, "
                f"Error: {type(exc).__name__}: {str(exc)}",
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait for all pending tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
