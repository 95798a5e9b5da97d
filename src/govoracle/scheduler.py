"""Periodic task scheduling.

Each registered task fires every `interval` seconds as its own asyncio
task. A firing while the previous run is still in flight is skipped (and
counted), never queued. A failing run is logged and has no effect on other
tasks or on the next firing.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from .core.logging import correlation_context

logger = logging.getLogger(__name__)


class TaskState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class PeriodicTask:
    """One named job with run exclusion and stats.

    Args:
        name: Task name, also the correlation-id prefix of its log lines.
        func: Coroutine function run on every firing.
        interval: Seconds between firings.
    """

    def __init__(self, name: str, func: Callable[[], Awaitable[Any]], interval: float):
        self.name = name
        self.interval = interval
        self._func = func
        self._current: asyncio.Task | None = None
        self.state = TaskState.IDLE
        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.last_error: str | None = None
        self.last_duration_ms: int | None = None

    def fire(self) -> asyncio.Task | None:
        """Start a run unless one is in flight or the task is stopped."""
        if self.state == TaskState.STOPPED:
            return None
        if self.state == TaskState.RUNNING:
            self.skipped += 1
            logger.debug("Task %s still running, skipping this firing", self.name)
            return None
        self.state = TaskState.RUNNING
        self._current = asyncio.create_task(self._run(), name=self.name)
        return self._current

    async def _run(self) -> None:
        started = time.monotonic()
        with correlation_context(task_name=self.name):
            try:
                await self._func()
            except Exception as e:
                self.failures += 1
                self.last_error = str(e)
                logger.exception("Task %s failed", self.name)
            finally:
                self.runs += 1
                self.last_duration_ms = int((time.monotonic() - started) * 1000)
                if self.state == TaskState.RUNNING:
                    self.state = TaskState.IDLE

    async def stop(self) -> None:
        """Stop firing and cancel a run in flight."""
        self.state = TaskState.STOPPED
        if self._current is not None and not self._current.done():
            self._current.cancel()
            try:
                await self._current
            except asyncio.CancelledError:
                pass

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "interval_seconds": self.interval,
            "runs": self.runs,
            "failures": self.failures,
            "skipped": self.skipped,
            "last_error": self.last_error,
            "last_duration_ms": self.last_duration_ms,
        }


class Scheduler:
    """Fires registered tasks on their intervals until stopped."""

    def __init__(self):
        self._tasks: dict[str, PeriodicTask] = {}
        self._loops: list[asyncio.Task] = []
        self._running = False

    @property
    def tasks(self) -> dict[str, PeriodicTask]:
        return dict(self._tasks)

    @property
    def running(self) -> bool:
        return self._running

    def add(self, name: str, func: Callable[[], Awaitable[Any]], interval: float) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        if interval <= 0:
            raise ValueError(f"Task interval must be positive: {interval}")
        task = PeriodicTask(name, func, interval)
        self._tasks[name] = task
        if self._running:
            self._loops.append(asyncio.create_task(self._loop(task)))
        return task

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        for task in self._tasks.values():
            self._loops.append(asyncio.create_task(self._loop(task)))
        logger.info("Scheduler started with %d task(s)", len(self._tasks))

    async def _loop(self, task: PeriodicTask) -> None:
        while self._running:
            task.fire()
            await asyncio.sleep(task.interval)

    async def stop(self) -> None:
        self._running = False
        for loop in self._loops:
            loop.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()
        for task in self._tasks.values():
            await task.stop()
        logger.info("Scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        return {name: task.get_stats() for name, task in self._tasks.items()}
