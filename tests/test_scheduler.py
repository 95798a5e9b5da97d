"""Tests for govoracle.scheduler - periodic firing, run exclusion and failure isolation."""

from __future__ import annotations

import asyncio

import pytest

from govoracle.core.logging import get_correlation_id
from govoracle.scheduler import PeriodicTask, Scheduler, TaskState


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_firing_while_running_is_skipped(self):
        release = asyncio.Event()
        calls = 0

        async def job():
            nonlocal calls
            calls += 1
            await release.wait()

        task = PeriodicTask("slow", job, interval=1)
        run = task.fire()
        await asyncio.sleep(0)

        assert task.state == TaskState.RUNNING
        assert task.fire() is None
        assert task.fire() is None

        release.set()
        await run
        assert calls == 1
        assert task.skipped == 2
        assert task.state == TaskState.IDLE

        await task.fire()
        assert calls == 2

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_isolated(self):
        async def job():
            raise RuntimeError("node unreachable")

        task = PeriodicTask("flaky", job, interval=1)
        await task.fire()
        await task.fire()

        stats = task.get_stats()
        assert stats["runs"] == 2
        assert stats["failures"] == 2
        assert stats["last_error"] == "node unreachable"
        assert stats["state"] == "idle"
        assert stats["last_duration_ms"] is not None

    @pytest.mark.asyncio
    async def test_runs_under_task_correlation_id(self):
        seen = []

        async def job():
            seen.append(get_correlation_id())

        await PeriodicTask("sync-314", job, interval=1).fire()
        assert seen[0].startswith("sync-314/")
        assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_stop_cancels_run_in_flight(self):
        started = asyncio.Event()

        async def job():
            started.set()
            await asyncio.sleep(3600)

        task = PeriodicTask("hang", job, interval=1)
        run = task.fire()
        await started.wait()

        await task.stop()

        assert run.done()
        assert task.state == TaskState.STOPPED
        assert task.fire() is None


class TestScheduler:
    def test_add_validates(self):
        async def job():
            pass

        scheduler = Scheduler()
        scheduler.add("a", job, 1)
        with pytest.raises(ValueError, match="already registered"):
            scheduler.add("a", job, 1)
        with pytest.raises(ValueError, match="positive"):
            scheduler.add("b", job, 0)

    @pytest.mark.asyncio
    async def test_fires_repeatedly_until_stopped(self):
        counts = {"fast": 0, "broken": 0}

        async def fast():
            counts["fast"] += 1

        async def broken():
            counts["broken"] += 1
            raise ValueError("bad row")

        scheduler = Scheduler()
        scheduler.add("fast", fast, 0.01)
        scheduler.add("broken", broken, 0.01)
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert not scheduler.running
        assert counts["fast"] >= 2
        assert counts["broken"] >= 2
        stats = scheduler.get_stats()
        assert stats["fast"]["failures"] == 0
        assert stats["broken"]["failures"] == counts["broken"]
        assert {s["state"] for s in stats.values()} == {"stopped"}

    @pytest.mark.asyncio
    async def test_task_added_while_running_starts(self):
        fired = asyncio.Event()

        async def job():
            fired.set()

        scheduler = Scheduler()
        await scheduler.start()
        scheduler.add("late", job, 60)
        await asyncio.wait_for(fired.wait(), timeout=1)
        await scheduler.stop()
