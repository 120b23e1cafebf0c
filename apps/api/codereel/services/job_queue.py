"""Bounded worker pool draining submitted jobs."""

from __future__ import annotations

import asyncio
import logging

from codereel.services.pipeline import PipelineExecutor

logger = logging.getLogger(__name__)


class JobQueue:
    """Unbounded backlog, fixed concurrency.

    Submits never wait on the queue; at most ``concurrency`` pipelines run at
    once and the rest stay ``queued`` until a worker frees up.
    """

    def __init__(self, executor: PipelineExecutor, *, concurrency: int = 1) -> None:
        self._executor = executor
        self.concurrency = max(1, int(concurrency))
        self._q: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def backlog(self) -> int:
        return self._q.qsize()

    def enqueue(self, job_id: str) -> None:
        self._q.put_nowait(job_id)

    async def start(self) -> None:
        if self._tasks:
            return
        for index in range(self.concurrency):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"job-worker-{index}"))
        logger.info("queue.started concurrency=%s backlog=%s", self.concurrency, self.backlog)

    async def drain(self) -> None:
        """Wait until every enqueued job has reached a terminal state."""
        await self._q.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("queue.stopped backlog=%s", self.backlog)

    async def _worker(self) -> None:
        while True:
            job_id = await self._q.get()
            try:
                await self._executor.run(job_id)
            except Exception:
                # run() contains phase failures; anything here is a bug and must not kill the worker.
                logger.exception("queue.worker_error job_id=%s", job_id)
            finally:
                self._q.task_done()


__all__ = ["JobQueue"]
