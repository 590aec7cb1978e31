"""Task manager lifecycle — start, stop, schedule, wait.

The ``TaskManager`` owns a set of ``CronJob`` definitions and runs them
on asyncio background tasks.  Each job has a ``period`` (seconds) and a
handler coroutine.  A failing run is logged and retried next period,
unless the error is one of the job's ``fatal`` types: those stop the
manager and are re-raised from :meth:`TaskManager.wait`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chain_indexer.metrics.collector import IndexerMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job."""

    handler: Callable[[], Awaitable[None]]
    period: float  # seconds
    name: str = ""
    immediate: bool = False  # run once before the first sleep
    fatal: tuple[type[Exception], ...] = ()


class TaskManager:
    """Manages asyncio-based cron jobs.

    Usage::

        tm = TaskManager(metrics=indexer_metrics)
        tm.register("sync_to_tip", CronJob(handler=..., period=30))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(self, *, metrics: IndexerMetrics | None = None) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False
        self._metrics = metrics
        self._stopped = asyncio.Event()
        self._error: Exception | None = None
        self._shutdown: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether the task manager is currently running."""
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs (name → CronJob)."""
        return dict(self._jobs)

    def register(self, name: str, job: CronJob) -> None:
        """Register a cron job.  Can be called before or after start().

        If the manager is already running the job is started immediately.
        """
        resolved = CronJob(
            handler=job.handler,
            period=job.period,
            name=name,
            immediate=job.immediate,
            fatal=job.fatal,
        )
        self._jobs[name] = resolved
        if self._running:
            self._tasks[name] = asyncio.create_task(self._run_loop(resolved))

    async def start(self) -> None:
        """Start all registered cron jobs."""
        if self._running:
            return
        self._running = True
        self._stopped.clear()
        self._error = None
        for name, job in self._jobs.items():
            self._tasks[name] = asyncio.create_task(self._run_loop(job))
        logger.info("TaskManager started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Cancel all running jobs and wait for cleanup."""
        if not self._tasks and not self._running:
            return
        self._running = False
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and r is not self._error:
                logger.error("Task error during shutdown: %s", r)
        self._tasks.clear()
        self._stopped.set()
        logger.info("TaskManager stopped")

    async def wait(self) -> None:
        """Block until the manager stops.

        Raises:
            Exception: The fatal error that stopped a job, if any.
        """
        await self._stopped.wait()
        if self._error is not None:
            raise self._error

    async def _run_loop(self, job: CronJob) -> None:
        """Repeatedly execute *job* every *job.period* seconds."""
        name = job.name or "unnamed"
        first = True
        while self._running:
            try:
                if not (first and job.immediate):
                    await asyncio.sleep(job.period)
                first = False
                if not self._running:
                    break
                await self._execute(name, job)
            except asyncio.CancelledError:
                raise
            except job.fatal as exc:
                logger.critical("Cron job %r hit a fatal error, stopping: %s", name, exc)
                self._error = exc
                self._running = False
                self._shutdown = asyncio.create_task(self.stop())
                return
            except Exception:
                logger.exception("Cron job %r failed", name)

    async def _execute(self, name: str, job: CronJob) -> None:
        if self._metrics:
            with self._metrics.track_cron(name):
                await job.handler()
        else:
            await job.handler()
