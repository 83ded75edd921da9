"""
Job Scheduler
=============

Strict FIFO execution of render jobs, one at a time.

The rendering surface serves a single job, so the scheduler never starts a job
before the previous one reached a terminal state. Jobs may be submitted from
any thread; they are executed by a single worker task on the scheduler's loop.
"""

from typing import Any, Deque, List, Optional
from collections import deque
from contextlib import suppress
import asyncio
import threading

from snippet_renderer.config.logging import get_logger
from snippet_renderer.core.errors import RendererBusyError, SchedulerStoppedError
from snippet_renderer.core.queue.job import RenderJob

logger = get_logger(__name__)


class JobScheduler:
    """Sequential render queue with suspend/resume and drain checks."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="job_scheduler")
        self._pending: Deque[RenderJob] = deque()
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._idle: Optional[asyncio.Event] = None
        self._worker: Optional["asyncio.Task[None]"] = None
        self._running_job: Optional[RenderJob] = None
        self._accepting = False
        self._suspended = False
        self._submitted = 0
        self.fatal_error: Optional[BaseException] = None

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._accepting and self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker on the running event loop."""
        if self.is_running:
            return
        if self.fatal_error is not None:
            raise SchedulerStoppedError(f"Scheduler stopped after a fatal error: {self.fatal_error}")

        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        if self.drained():
            self._idle.set()
        self._accepting = True
        self._worker = self._loop.create_task(self._work_loop(), name="render-worker")
        self.logger.info("Job scheduler started")

    async def stop(self) -> None:
        """
        Stop accepting jobs and shut the worker down.

        Queued jobs and an interrupted running job finish as CANCELLED.
        """
        self._accepting = False
        running = self._running_job
        aborted = self._abort_pending()

        if self._worker is not None:
            self._worker.cancel()
            with suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

        if running is not None and running.abort() is not None:
            aborted += 1
        self._running_job = None
        if self._idle is not None:
            self._idle.set()

        self.logger.info("Job scheduler stopped", submitted=self._submitted, aborted=aborted)

    # Submission

    @property
    def operations_requested(self) -> int:
        return self._submitted

    def submit(self, job: RenderJob) -> int:
        """
        Enqueue a job.

        Args:
            job: Job in the QUEUED state

        Returns:
            The job's submission index, starting at 1

        Raises:
            SchedulerStoppedError: If the scheduler is not accepting jobs
        """
        if not self.is_running:
            reason = f"fatal error: {self.fatal_error}" if self.fatal_error else "not running"
            raise SchedulerStoppedError(f"Cannot submit {job.identifier!r}, scheduler is {reason}")

        with self._lock:
            self._submitted += 1
            job.submission_index = self._submitted
            self._pending.append(job)

        self._call_on_loop(self._mark_busy)
        self.logger.debug(
            "Job submitted", job=job.identifier, index=job.submission_index, pending=len(self._pending)
        )
        return job.submission_index

    # Flow control

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    @is_suspended.setter
    def is_suspended(self, value: bool) -> None:
        if value == self._suspended:
            return
        self._suspended = value
        self.logger.info("Job scheduler suspended" if value else "Job scheduler resumed")
        if not value:
            self._call_on_loop(self._wake)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running_job(self) -> Optional[RenderJob]:
        return self._running_job

    def drained(self) -> bool:
        """True when no job is queued or running."""
        return not self._pending and self._running_job is None

    async def join(self) -> None:
        """
        Wait until the scheduler is drained.

        Raises:
            SchedulerStoppedError: If the scheduler is not running
            RendererBusyError: If jobs are queued while the scheduler is suspended
        """
        while not self.drained():
            if self._idle is None or not self.is_running:
                raise SchedulerStoppedError("Cannot wait on a scheduler that is not running")
            if self._suspended and self._pending and self._running_job is None:
                raise RendererBusyError(
                    f"Cannot wait for {len(self._pending)} queued job(s) while the scheduler is suspended"
                )
            self._idle.clear()
            await self._idle.wait()

    def cancel_all(self) -> int:
        """
        Cancel every queued job and the running one.

        Returns:
            Number of jobs cancelled
        """
        cancelled = self._abort_pending()
        running = self._running_job
        if running is not None and running.cancel():
            cancelled += 1
        self.logger.info("Cancelled all jobs", cancelled=cancelled)
        return cancelled

    # Worker

    async def _work_loop(self) -> None:
        wakeup, idle = self._wakeup, self._idle
        if wakeup is None or idle is None:
            raise RuntimeError("Render worker started before the scheduler")
        while True:
            if self._suspended or not self._pending:
                # Wake joiners so they re-check for drain or suspension.
                idle.set()
                wakeup.clear()
                await wakeup.wait()
                continue

            job = self._pending.popleft()
            self._running_job = job
            try:
                await job.run()
            except Exception as e:
                self.fatal_error = e
                self._accepting = False
                self.logger.error(
                    "Render worker stopped on unexpected error",
                    job=job.identifier,
                    index=job.submission_index,
                    error=str(e),
                    exc_info=True,
                )
                self._abort_pending()
                idle.set()
                return
            finally:
                self._running_job = None

    def _abort_pending(self) -> int:
        with self._lock:
            jobs: List[RenderJob] = list(self._pending)
            self._pending.clear()
        for job in jobs:
            job.abort()
        return len(jobs)

    def _mark_busy(self) -> None:
        if self._idle is not None:
            self._idle.clear()
        self._wake()

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    def _call_on_loop(self, callback: Any) -> None:
        if self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            callback()
        else:
            self._loop.call_soon_threadsafe(callback)
