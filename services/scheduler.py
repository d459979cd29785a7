"""
================================================================================
STRIPE SYNC - Background Scheduler
================================================================================
Single-shot delayed tasks that run beside the webhook response path.
Task errors are logged and never reach the caller that scheduled them.
================================================================================
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from prometheus_client import Counter

logger = logging.getLogger("stripe_sync.scheduler")

BACKGROUND_TASKS = Counter(
    'stripe_sync_background_tasks_total',
    'Background task outcomes',
    ['name', 'status']
)


class BackgroundScheduler:
    """Fire-and-forget delayed task runner on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        delay: float,
        task_factory: Callable[[], Awaitable[Any]],
        name: str = "background",
    ) -> asyncio.Task:
        """
        Run ``task_factory()`` after ``delay`` seconds without blocking.
        The returned task resolves to True on success, False on failure.
        """
        task = asyncio.create_task(self._run(delay, task_factory, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        delay: float,
        task_factory: Callable[[], Awaitable[Any]],
        name: str,
    ) -> bool:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            await task_factory()
        except asyncio.CancelledError:
            BACKGROUND_TASKS.labels(name=name, status="cancelled").inc()
            raise
        except Exception as e:
            BACKGROUND_TASKS.labels(name=name, status="failed").inc()
            logger.error(f"Background task {name} failed: {e}")
            return False

        BACKGROUND_TASKS.labels(name=name, status="succeeded").inc()
        logger.debug(f"Background task {name} completed")
        return True

    async def wait(self, task: asyncio.Task, timeout: Optional[float] = None) -> bool:
        """
        Wait for a scheduled task to finish.
        Returns the task's success flag, or False on timeout. The task keeps
        running after a timeout.
        """
        try:
            return bool(await asyncio.wait_for(asyncio.shield(task), timeout=timeout))
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {timeout}s waiting for {task.get_name()}")
            return False

    async def shutdown(self):
        """Await every outstanding task (application shutdown)."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} background task(s)")
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
