"""
Tests for the periodic background jobs: the token monitor and the fallback
queue drainer.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from relay.services.scheduler import PeriodicTask, queue_drainer, token_monitor


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_waits_initial_delay_then_interval(self):
        waits = []
        second_run = asyncio.Event()

        async def sleep(seconds):
            waits.append(seconds)
            await asyncio.sleep(0)

        async def job():
            if task.runs >= 2:
                second_run.set()

        task = PeriodicTask("test job", job, 60, initial_delay=5, sleep=sleep)
        task.start()
        await asyncio.wait_for(second_run.wait(), timeout=1)
        await task.stop()

        assert waits[:2] == [5, 60]
        assert not task.running

    @pytest.mark.asyncio
    async def test_failing_run_is_logged_not_raised(self):
        job = AsyncMock(side_effect=RuntimeError("boom"))
        task = PeriodicTask("test job", job, 60)

        await task.run_once()
        await task.run_once()

        assert task.runs == 2
        assert job.await_count == 2

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicTask("test job", AsyncMock(), 0)

    def test_initial_delay_defaults_to_interval(self):
        assert PeriodicTask("test job", AsyncMock(), 90).initial_delay == 90

    @pytest.mark.asyncio
    async def test_stop_before_start_is_a_no_op(self):
        await PeriodicTask("test job", AsyncMock(), 60).stop()


class TestJobs:
    @pytest.mark.asyncio
    async def test_token_monitor_probes_the_guard(self):
        guard = MagicMock()
        guard.ensure_live = AsyncMock(return_value=False)
        task = token_monitor(guard, 30)

        await task.run_once()

        guard.ensure_live.assert_awaited_once_with()
        assert task.interval == 30 * 60
        assert task.initial_delay == 2.0

    @pytest.mark.asyncio
    async def test_drainer_skips_empty_queue(self):
        queue = MagicMock()
        queue.__len__.return_value = 0
        queue.drain = AsyncMock()

        await queue_drainer(queue, MagicMock(), 60).run_once()

        queue.drain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_drainer_drains_pending_entries(self):
        queue = MagicMock()
        queue.__len__.return_value = 3
        queue.drain = AsyncMock()
        engine = MagicMock()

        await queue_drainer(queue, engine, 60).run_once()

        queue.drain.assert_awaited_once_with(engine)
