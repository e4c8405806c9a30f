"""
Bounded queue for the work done after a reply has been returned.

ReplyPipeline submits two jobs per turn: attaching the utterance embedding
to the stored user turn, and running the extraction pipeline. Both are
best-effort. A job that fails is logged and counted, and then it is gone.
Nothing retries it and nothing keeps it for later.

    worker = BackgroundWorker(max_queue_size=1000, max_concurrent=2)
    await worker.start()
    await worker.submit(pipeline.run, owner_id, utterance, history, name="extract")
    await worker.join()           # tests: wait for the queue to drain
    await worker.stop(timeout=30)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Optional
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)

JobFunc = Callable[..., Coroutine[Any, Any, Any]]


@dataclass
class _Job:
    func: JobFunc
    args: tuple
    kwargs: dict
    name: str
    id: UUID = field(default_factory=uuid4)
    queued_at: float = field(default_factory=time.monotonic)


@dataclass
class WorkerMetrics:
    """Counters exposed for monitoring and tests."""

    tasks_submitted: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    # refused because the queue was full or the worker was not running
    tasks_dropped: int = 0
    current_queue_size: int = 0
    peak_queue_size: int = 0


class BackgroundWorker:
    """Runs submitted coroutines on ``max_concurrent`` consumer tasks."""

    def __init__(self, max_queue_size: int = 1000, max_concurrent: int = 2):
        self.max_queue_size = max_queue_size
        self.max_concurrent = max_concurrent

        self._queue: asyncio.Queue[_Job] = asyncio.Queue(maxsize=max_queue_size)
        self._consumers: list[asyncio.Task] = []
        self._running = False
        self._metrics = WorkerMetrics()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def metrics(self) -> WorkerMetrics:
        self._metrics.current_queue_size = self._queue.qsize()
        return self._metrics

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._consumers = [
            asyncio.create_task(self._consume(n), name=f"twin-worker-{n}")
            for n in range(self.max_concurrent)
        ]
        logger.info(f"Background worker started ({self.max_concurrent} consumers)")

    async def join(self) -> None:
        """Return once every job queued so far has finished."""
        await self._queue.join()

    async def stop(self, timeout: float = 30.0) -> None:
        """Refuse new jobs, give queued and running ones ``timeout`` seconds, then cancel."""
        if not self._running:
            return
        self._running = False

        pending = self._queue.qsize()
        if pending:
            logger.info(f"Draining {pending} background jobs before shutdown")
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timed out with {self._queue.qsize()} jobs still queued"
            )

        for consumer in self._consumers:
            consumer.cancel()
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []
        logger.info("Background worker stopped")

    async def submit(
        self,
        func: JobFunc,
        *args: Any,
        name: str = "",
        **kwargs: Any,
    ) -> Optional[UUID]:
        """Queue ``func(*args, **kwargs)`` without waiting.

        Returns the job id, or None when the job was dropped because the
        worker is stopped or the queue is full.
        """
        job = _Job(
            func=func,
            args=args,
            kwargs=kwargs,
            name=name or getattr(func, "__name__", "job"),
        )

        if not self._running:
            self._drop(job, "worker not running")
            return None
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self._drop(job, f"queue full ({self.max_queue_size})")
            return None

        self._metrics.tasks_submitted += 1
        self._metrics.peak_queue_size = max(
            self._metrics.peak_queue_size, self._queue.qsize()
        )
        logger.debug(f"Queued job {job.name} ({job.id})")
        return job.id

    def _drop(self, job: _Job, reason: str) -> None:
        self._metrics.tasks_dropped += 1
        logger.warning(f"Dropped background job {job.name}: {reason}")

    async def _consume(self, consumer_id: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job, consumer_id)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job, consumer_id: int) -> None:
        waited = time.monotonic() - job.queued_at
        try:
            await job.func(*job.args, **job.kwargs)
        except Exception as e:
            self._metrics.tasks_failed += 1
            logger.error(f"Background job {job.name} ({job.id}) failed: {e}")
            return
        self._metrics.tasks_completed += 1
        logger.debug(
            f"Job {job.name} done on consumer {consumer_id} "
            f"after {waited:.3f}s in queue"
        )
