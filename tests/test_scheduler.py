"""Tests for the periodic task scheduler."""
from __future__ import annotations

import asyncio
from typing import List

from mirror_trader.scheduler import PeriodicTask


class TestPeriodicTask:
    def test_runs_immediately_then_repeats(self) -> None:
        runs: List[float] = []

        async def scenario() -> None:
            loop = asyncio.get_running_loop()

            async def job() -> None:
                runs.append(loop.time())

            task = PeriodicTask(job, 0.01, name="t")
            await task.start()
            assert len(runs) == 1
            await asyncio.sleep(0.1)
            task.stop()
            await task.wait_closed()

        asyncio.run(scenario())
        assert len(runs) >= 3

    def test_exception_does_not_stop_loop(self) -> None:
        calls = 0

        async def scenario() -> None:
            async def job() -> None:
                nonlocal calls
                calls += 1
                raise RuntimeError("tick failed")

            task = PeriodicTask(job, 0.01)
            await task.start()
            await asyncio.sleep(0.1)
            assert task.running
            task.stop()
            await task.wait_closed()
            assert not task.running

        asyncio.run(scenario())
        assert calls >= 3

    def test_runs_never_overlap(self) -> None:
        active = 0
        max_active = 0
        runs = 0

        async def scenario() -> None:
            async def job() -> None:
                nonlocal active, max_active, runs
                active += 1
                runs += 1
                max_active = max(max_active, active)
                await asyncio.sleep(0.03)
                active -= 1

            task = PeriodicTask(job, 0.005)
            await task.start()
            await asyncio.sleep(0.15)
            task.stop()
            await task.wait_closed()

        asyncio.run(scenario())
        assert runs >= 2
        assert max_active == 1

    def test_stop_lets_running_job_finish(self) -> None:
        finished: List[bool] = []

        async def scenario() -> None:
            started = asyncio.Event()
            first = True

            async def job() -> None:
                nonlocal first
                if first:
                    first = False
                    return
                started.set()
                await asyncio.sleep(0.05)
                finished.append(True)

            task = PeriodicTask(job, 0.01)
            await task.start()
            await started.wait()
            task.stop()
            await task.wait_closed()

        asyncio.run(scenario())
        assert finished == [True]

    def test_stop_before_next_run(self) -> None:
        runs = 0

        async def scenario() -> None:
            async def job() -> None:
                nonlocal runs
                runs += 1

            task = PeriodicTask(job, 60)
            await task.start()
            task.stop()
            await asyncio.wait_for(task.wait_closed(), timeout=1.0)

        asyncio.run(scenario())
        assert runs == 1
