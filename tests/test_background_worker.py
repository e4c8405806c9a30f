"""Tests for the bounded background task worker."""
import asyncio

import pytest

from src.twin.background_worker import BackgroundWorker


class TestBackgroundWorker:

    @pytest.mark.asyncio
    async def test_runs_submitted_task(self, worker):
        seen = []

        async def record(value, suffix=""):
            seen.append(value + suffix)

        task_id = await worker.submit(record, "turn", suffix="-1", name="record")
        await worker.join()

        assert task_id is not None
        assert seen == ["turn-1"]
        assert worker.metrics.tasks_submitted == 1
        assert worker.metrics.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_failure_is_counted_not_raised(self, worker):
        async def explode():
            raise RuntimeError("boom")

        async def fine():
            return "ok"

        await worker.submit(explode)
        await worker.submit(fine)
        await worker.join()

        assert worker.metrics.tasks_failed == 1
        assert worker.metrics.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_submit_before_start_is_dropped(self):
        worker = BackgroundWorker()

        async def noop():
            pass

        assert await worker.submit(noop) is None
        assert worker.metrics.tasks_dropped == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_task(self):
        worker = BackgroundWorker(max_queue_size=1, max_concurrent=1)
        release = asyncio.Event()
        started = asyncio.Event()

        async def blocker():
            started.set()
            await release.wait()

        async def noop():
            pass

        await worker.start()
        try:
            await worker.submit(blocker)
            await started.wait()
            assert await worker.submit(noop) is not None
            assert await worker.submit(noop) is None
            assert worker.metrics.tasks_dropped == 1
            assert worker.metrics.peak_queue_size == 1
        finally:
            release.set()
            await worker.stop(timeout=5.0)

    @pytest.mark.asyncio
    async def test_stop_drains_queue(self):
        worker = BackgroundWorker(max_queue_size=10, max_concurrent=1)
        done = []

        async def slow(i):
            await asyncio.sleep(0.01)
            done.append(i)

        await worker.start()
        for i in range(3):
            await worker.submit(slow, i)
        await worker.stop(timeout=5.0)

        assert done == [0, 1, 2]
        assert not worker.is_running
