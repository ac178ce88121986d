"""Detached execution of ingestion jobs.

The HTTP request that submits a video returns as soon as the job record
exists; the actual ingestion runs as a task owned by `BackgroundJobRunner`.
Progress and outcome are only observable through the job store.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from src.utils.logging import get_logger

logger = get_logger(__name__)


class BackgroundJobRunner:
    """Runs job coroutines as tracked asyncio tasks.

    Tasks are referenced until they finish so they cannot be garbage
    collected mid-flight. Exceptions that escape a job are logged here; they
    never reach the request that started the job.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job_id: str, job: Callable[[], Awaitable[Any]]) -> asyncio.Task[Any]:
        """Schedule `job()` on the running loop and return its task.

        Submitting a job id that is still running returns the existing task.
        """
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            logger.info("background_job_already_running", job_id=job_id)
            return existing

        task = asyncio.create_task(self._run(job_id, job), name=f"ingest-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda done: self._forget(job_id, done))
        logger.info("background_job_submitted", job_id=job_id)
        return task

    def _forget(self, job_id: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _run(self, job_id: str, job: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await job()
        except asyncio.CancelledError:
            logger.warning("background_job_cancelled", job_id=job_id)
            raise
        except Exception as e:
            logger.exception(
                "background_job_failed",
                job_id=job_id,
                error_type=type(e).__name__,
            )
            return None

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every outstanding job to finish.

        Jobs still running after `timeout` seconds are cancelled.
        """
        try:
            async with asyncio.timeout(timeout):
                while self._tasks:
                    await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        except TimeoutError:
            logger.warning("background_drain_timed_out", pending=len(self._tasks))
            await self.shutdown()

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("background_runner_stopped", cancelled=len(tasks))
