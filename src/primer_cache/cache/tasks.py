from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class DetachedTasks:
    """
    Fire-and-forget tasks whose outcome no caller awaits.

    Exceptions are logged and dropped. `drain()` lets a short-lived process wait
    for outstanding work before tearing down shared resources.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, None], *, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        try:
            task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("Detached task failed. name=%s", task.get_name())

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, *, timeout_seconds: Optional[float] = None) -> None:
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _, not_done = await asyncio.wait(tasks, timeout=timeout_seconds)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("Detached tasks cancelled after drain timeout. count=%d", len(not_done))
            await asyncio.gather(*not_done, return_exceptions=True)
