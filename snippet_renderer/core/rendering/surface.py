"""
Rendering Surface
=================

Boundary between render jobs and the stateful component that lays out HTML
and produces pixels.

A surface serves one job at a time and keeps a weak back-reference to it.
Load outcomes are reported from whatever thread the surface runs callbacks on
and travel through a ``CompletionChannel``: a single dispatcher hands each
event to its job and releases the back-reference right after, so load
notifications are never processed concurrently with one another or with the
next job's surface assignment.
"""

from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING, TypeVar
from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
import asyncio
import weakref

from snippet_renderer.config.logging import get_logger
from snippet_renderer.core.errors import SurfaceBusyError
from snippet_renderer.models.schemas import ContentRect

if TYPE_CHECKING:
    from snippet_renderer.core.queue.job import RenderJob

logger = get_logger(__name__)

T = TypeVar("T")


class SurfaceEventKind(str, Enum):
    """Asynchronous notifications a surface emits."""
    LOAD_FINISHED = "load_finished"
    LOAD_FAILED = "load_failed"


@dataclass(frozen=True)
class SurfaceEvent:
    """One load notification, bound to the job that held the surface when it fired."""

    kind: SurfaceEventKind
    job: Optional["RenderJob"]
    source: Optional["RenderingSurface"] = None
    error: Optional[BaseException] = None


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class CompletionChannel:
    """Serializes surface notifications into job logic."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="completion_channel")
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional["asyncio.Queue[SurfaceEvent]"] = None
        self._dispatcher: Optional["asyncio.Task[None]"] = None
        self.delivered = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    def start(self) -> None:
        """Start the dispatcher on the running event loop."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._dispatcher = self._loop.create_task(self._dispatch(), name="completion-channel")
        self.logger.info("Completion channel started")

    async def stop(self) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.cancel()
        with suppress(asyncio.CancelledError):
            await self._dispatcher
        self._dispatcher = None
        self.logger.info("Completion channel stopped", delivered=self.delivered, dropped=self.dropped)

    def post(self, event: SurfaceEvent) -> None:
        """
        Queue an event for dispatch. Safe to call from any thread.

        Raises:
            RuntimeError: If the channel was never started
        """
        if self._loop is None or self._queue is None:
            raise RuntimeError("Completion channel is not running")

        if _running_loop() is self._loop:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def _dispatch(self) -> None:
        queue = self._queue
        if queue is None:
            raise RuntimeError("Completion channel dispatcher started without a queue")
        while True:
            event = await queue.get()
            try:
                self._deliver(event)
            finally:
                queue.task_done()

    def _deliver(self, event: SurfaceEvent) -> None:
        job = event.job
        try:
            if job is None:
                self.dropped += 1
                self.logger.warning("Dropped surface event with no current job", kind=event.kind.value)
                return

            if job.deliver_surface_event(event):
                self.delivered += 1
            else:
                self.dropped += 1
                self.logger.warning(
                    "Dropped stale surface event",
                    kind=event.kind.value,
                    job=job.identifier,
                    state=job.state.value,
                )
        finally:
            if event.source is not None:
                event.source.release(job)


class RenderingSurface(ABC):
    """
    Single-instance, stateful rendering component.

    Implementations provide the layout primitives; this base class owns the
    job back-reference, thread-safe event reporting and marshalling of calls
    onto the surface's own event loop.
    """

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component=type(self).__name__)
        self._channel: Optional[CompletionChannel] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._current_job: Optional["weakref.ReferenceType[RenderJob]"] = None

    # Wiring

    def bind(
        self, channel: CompletionChannel, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> None:
        """Attach the completion channel and the loop surface calls must run on."""
        self._channel = channel
        self._loop = loop or asyncio.get_running_loop()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    # Job back-reference

    @property
    def current_job(self) -> Optional["RenderJob"]:
        if self._current_job is None:
            return None
        return self._current_job()

    def attach(self, job: "RenderJob") -> None:
        """
        Make ``job`` the surface's current job.

        Raises:
            SurfaceBusyError: If a different job still holds the surface
        """
        current = self.current_job
        if current is not None and current is not job:
            raise SurfaceBusyError(
                f"Surface is held by job {current.identifier!r}, cannot serve {job.identifier!r}"
            )
        self._current_job = weakref.ref(job)

    def release(self, job: Optional["RenderJob"] = None) -> None:
        """Drop the back-reference, only if it still points at ``job`` when one is given."""
        if job is None or self.current_job is job:
            self._current_job = None

    # Event reporting, callable from any thread
    #
    # Implementations pass the job that was current when the load started, so
    # a late load is never credited to a job that attached afterwards.

    def report_load_finished(self, job: Optional["RenderJob"] = None) -> None:
        self._post(SurfaceEventKind.LOAD_FINISHED, job=job)

    def report_load_failed(self, error: BaseException, job: Optional["RenderJob"] = None) -> None:
        self._post(SurfaceEventKind.LOAD_FAILED, error, job)

    def _post(
        self,
        kind: SurfaceEventKind,
        error: Optional[BaseException] = None,
        job: Optional["RenderJob"] = None,
    ) -> None:
        if self._channel is None:
            self.logger.warning("Surface event with no completion channel bound", kind=kind.value)
            return
        owner = job if job is not None else self.current_job
        self._channel.post(SurfaceEvent(kind=kind, job=owner, source=self, error=error))

    # Affinity

    async def run_on_surface(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Await ``fn(*args)`` on the surface's loop, hopping threads if needed."""
        if self._loop is None:
            raise RuntimeError("Surface is not bound to an event loop")

        if _running_loop() is self._loop:
            return await fn(*args)

        future = asyncio.run_coroutine_threadsafe(fn(*args), self._loop)
        return await asyncio.wrap_future(future)

    # Primitives

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    async def open(self) -> None:
        """Acquire the underlying rendering resources."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying rendering resources."""
        pass

    @abstractmethod
    async def resize(self, width: float, height: float) -> None:
        """Set the visible size the next load lays out against."""
        pass

    @abstractmethod
    async def load_markup(self, html: str) -> None:
        """
        Start loading ``html``.

        Returns once the load has started. The outcome is reported later through
        ``report_load_finished`` or ``report_load_failed``, passing the job
        that was current when this call was made.
        """
        pass

    @abstractmethod
    async def measure_content_rect(self) -> ContentRect:
        """Bounding rectangle of the render container in the loaded document."""
        pass

    @abstractmethod
    async def snapshot(self, rect: ContentRect) -> Optional[bytes]:
        """PNG snapshot of ``rect``, or None if the surface produced nothing."""
        pass
