"""Cooperative scheduler: cancelable periodic tasks on one event loop."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``func`` every ``interval`` seconds until cancelled."""

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[Any]],
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self.interval = interval
        self._func = func
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def _run(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            try:
                await self._func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Periodic task %s failed: %s", self.name, e)
            await asyncio.sleep(self.interval)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def wait_cancelled(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class Scheduler:
    """Owns every background task so a session can be torn down explicitly."""

    def __init__(self) -> None:
        self._periodic: list[PeriodicTask] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def every(
        self,
        interval: float,
        func: Callable[[], Awaitable[Any]],
        name: str = "periodic",
        run_immediately: bool = True,
    ) -> PeriodicTask:
        task = PeriodicTask(name, interval, func, run_immediately)
        self._periodic.append(task)
        task.start()
        return task

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str = "task") -> asyncio.Task[Any]:
        """Run a one-off coroutine in the background."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    async def shutdown(self) -> None:
        """Cancel everything and wait for it to unwind."""
        for periodic in self._periodic:
            periodic.cancel()
        for task in list(self._tasks):
            task.cancel()
        for periodic in self._periodic:
            await periodic.wait_cancelled()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._periodic.clear()
        self._tasks.clear()
