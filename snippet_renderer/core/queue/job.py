"""
Render Job
==========

One render request and its state machine::

    QUEUED -> RUNNING -> AWAITING_SURFACE_LOAD -> AWAITING_SNAPSHOT -> COMPLETED
                 \\______________\\_____________________\\____________-> FAILED | CANCELLED

COMPLETED, FAILED and CANCELLED are terminal and reachable from every
non-terminal state. Job-level problems end in FAILED with a ``RenderError``;
anything else fails the job and is re-raised to the scheduler.
"""

from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Union
from pathlib import Path
import asyncio
import time

from snippet_renderer.config.logging import get_logger
from snippet_renderer.config.settings import Settings, get_settings
from snippet_renderer.core.cache.result_cache import ResultCache
from snippet_renderer.core.errors import (
    InvalidStateTransitionError,
    RenderError,
    SnapshotError,
    SurfaceBusyError,
    SurfaceLoadError,
)
from snippet_renderer.core.rendering.image import ImageDecodeError, rendered_image_from_png
from snippet_renderer.core.rendering.surface import RenderingSurface, SurfaceEvent, SurfaceEventKind
from snippet_renderer.core.templates.engine import DEFAULT_TEMPLATE_IDENTIFIER, TemplateEngine
from snippet_renderer.models.schemas import (
    JobState,
    RenderedImage,
    RenderResult,
    StyleAttributes,
)

logger = get_logger(__name__)

CompletionHandler = Callable[[RenderResult], None]

_TERMINAL: FrozenSet[JobState] = frozenset(
    {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.QUEUED: _TERMINAL | {JobState.RUNNING},
    JobState.RUNNING: _TERMINAL | {JobState.AWAITING_SURFACE_LOAD},
    JobState.AWAITING_SURFACE_LOAD: _TERMINAL | {JobState.AWAITING_SNAPSHOT},
    JobState.AWAITING_SNAPSHOT: _TERMINAL,
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


class RenderJob:
    """
    Render a snippet into an image against the shared rendering surface.

    Args:
        html_snippet: HTML fragment to render
        identifier: Cache key, also used as the job's name in logs
        engine: Template engine producing the final markup
        cache: Result cache consulted before and written after rendering
        surface: Shared rendering surface
        template_identifier: Template to embed the snippet in; None loads the snippet verbatim
        attributes: Style overrides merged over the engine defaults
        ignore_cache: Skip the cache lookup
        should_cache: Store a freshly rendered image in the cache
        on_complete: Called once with the result when the job reaches a terminal state
    """

    def __init__(
        self,
        html_snippet: str,
        identifier: str,
        *,
        engine: TemplateEngine,
        cache: ResultCache,
        surface: RenderingSurface,
        settings: Optional[Settings] = None,
        template_identifier: Optional[str] = DEFAULT_TEMPLATE_IDENTIFIER,
        attributes: Union[StyleAttributes, Mapping[str, Any], None] = None,
        ignore_cache: bool = False,
        should_cache: bool = True,
        on_complete: Optional[CompletionHandler] = None,
    ):
        self.html_snippet = html_snippet
        self.identifier = identifier
        self.template_identifier = template_identifier
        self.attributes = attributes
        self.ignore_cache = ignore_cache
        self.should_cache = should_cache
        self.on_complete = on_complete

        self.engine = engine
        self.cache = cache
        self.surface = surface
        self.settings = settings or get_settings()

        self.submission_index = 0
        self.start_time: Optional[float] = None
        self.elapsed = 0.0
        self.state = JobState.QUEUED
        self.was_cached = False
        self.image: Optional[RenderedImage] = None
        self.error: Optional[BaseException] = None
        self.result: Optional[RenderResult] = None

        self._cancelled = False
        self._surface_event: Optional["asyncio.Future[SurfaceEvent]"] = None
        self.logger: Any = logger.bind(job=identifier)

    def __repr__(self) -> str:
        return f"<RenderJob {self.identifier!r} #{self.submission_index} {self.state.value}>"

    # State

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    def cancel(self) -> bool:
        """
        Mark the job cancelled.

        Takes effect at the next state check. A job waiting on the surface is
        finalized when the surface callback arrives.

        Returns:
            False if the job had already finished
        """
        if self.is_finished:
            return False
        self._cancelled = True
        self.logger.info("Render job cancellation requested", state=self.state.value)
        return True

    def abort(self) -> Optional[RenderResult]:
        """Finish a job that will not be run (further) as CANCELLED."""
        if self.is_finished:
            return None
        self._cancelled = True
        self.surface.release(self)
        return self._finish(JobState.CANCELLED)

    def _transition(self, state: JobState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(
                f"Job {self.identifier!r} cannot move from {self.state.value} to {state.value}"
            )
        self.logger.debug("Job state changed", from_state=self.state.value, to_state=state.value)
        self.state = state

    def deliver_surface_event(self, event: SurfaceEvent) -> bool:
        """Hand a surface notification to the job. False if it was not waiting for one."""
        waiter = self._surface_event
        if waiter is None or waiter.done():
            return False
        waiter.set_result(event)
        return True

    # Execution

    async def run(self) -> RenderResult:
        """Execute the job to a terminal state."""
        self.start_time = time.monotonic()
        if self._cancelled:
            return self._finish(JobState.CANCELLED)

        self._transition(JobState.RUNNING)
        try:
            return await self._work()
        except RenderError as e:
            if e.identifier is None:
                e.identifier = self.identifier
            return self._finish(JobState.FAILED, error=e)
        except Exception as e:
            if not self.is_finished:
                self._finish(JobState.FAILED, error=e)
            raise
        finally:
            self.surface.release(self)

    async def _work(self) -> RenderResult:
        if not self.ignore_cache:
            cached = self.cache.get(self.identifier)
            if cached is not None:
                return self._finish(JobState.COMPLETED, image=cached, was_cached=True)

        attributes = self.engine.merge_attributes(self.attributes)
        markup = self._build_markup(attributes)
        self._write_debug_markup(markup)

        if self._cancelled:
            return self._finish(JobState.CANCELLED)

        event = await self._load(markup, attributes)
        if event is None or self._cancelled:
            return self._finish(JobState.CANCELLED)
        if event.kind == SurfaceEventKind.LOAD_FAILED:
            raise SurfaceLoadError(
                f"Surface failed to load markup: {event.error}", self.identifier
            ) from event.error

        self._transition(JobState.AWAITING_SNAPSHOT)
        image = await self._snapshot()
        if self._cancelled:
            return self._finish(JobState.CANCELLED)

        if self.should_cache:
            self.cache.put(self.identifier, image)
        return self._finish(JobState.COMPLETED, image=image)

    def _build_markup(self, attributes: StyleAttributes) -> str:
        if self.template_identifier is None:
            return self.html_snippet
        return self.engine.render(self.html_snippet, self.template_identifier, attributes)

    def _write_debug_markup(self, markup: str) -> None:
        if not self.settings.write_html_to_disk:
            return

        path = Path(self.settings.html_debug_path) / f"{self.submission_index:03d}.html"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(markup, encoding="utf-8")
        except OSError as e:
            self.logger.warning("Could not save markup for inspection", path=str(path), error=str(e))
        else:
            self.logger.debug("Saved markup for inspection", path=str(path))

    async def _load(self, markup: str, attributes: StyleAttributes) -> Optional[SurfaceEvent]:
        """Start the load and wait for its event; None if cancelled before one arrived."""
        width = attributes.target_width
        height = attributes.target_height or self.settings.default_viewport_height

        self._surface_event = asyncio.get_running_loop().create_future()
        self._transition(JobState.AWAITING_SURFACE_LOAD)
        try:
            try:
                await self.surface.run_on_surface(self._begin_load, markup, width, height)
            except SurfaceBusyError:
                raise
            except Exception as e:
                raise SurfaceLoadError(f"Surface rejected markup: {e}", self.identifier) from e

            timeout = self.settings.surface_timeout
            try:
                return await asyncio.wait_for(self._surface_event, timeout)
            except asyncio.TimeoutError:
                if self._cancelled:
                    return None
                raise SurfaceLoadError(
                    f"Surface did not report a load within {timeout}s", self.identifier
                ) from None
        finally:
            self._surface_event = None

    async def _begin_load(self, markup: str, width: float, height: float) -> None:
        # Runs on the surface loop.
        self.surface.attach(self)
        await self.surface.resize(width, height)
        await self.surface.load_markup(markup)

    async def _snapshot(self) -> RenderedImage:
        try:
            rect = await self.surface.run_on_surface(self.surface.measure_content_rect)
            png_bytes = await self.surface.run_on_surface(self.surface.snapshot, rect)
        except Exception as e:
            raise SnapshotError(f"Surface snapshot failed: {e}", self.identifier) from e

        if png_bytes is None:
            raise SnapshotError("Surface returned neither an image nor an error", self.identifier)

        try:
            return rendered_image_from_png(png_bytes, optimize=self.settings.optimize_png)
        except ImageDecodeError as e:
            raise SnapshotError(str(e), self.identifier) from e

    def _finish(
        self,
        state: JobState,
        image: Optional[RenderedImage] = None,
        was_cached: bool = False,
        error: Optional[BaseException] = None,
    ) -> RenderResult:
        self._transition(state)
        started = self.start_time if self.start_time is not None else time.monotonic()
        self.elapsed = time.monotonic() - started
        self.image = image
        self.was_cached = was_cached
        self.error = error

        self.result = RenderResult(
            identifier=self.identifier,
            state=state,
            image=image,
            was_cached=was_cached,
            error=error,
            elapsed=self.elapsed,
            submission_index=self.submission_index or None,
        )

        if error is not None:
            self.logger.warning(
                "Render finished with error",
                index=self.submission_index,
                state=state.value,
                elapsed=f"{self.elapsed:.4f}s",
                was_cached=was_cached,
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            self.logger.info(
                "Render finished",
                index=self.submission_index,
                state=state.value,
                elapsed=f"{self.elapsed:.4f}s",
                was_cached=was_cached,
            )

        if self.on_complete is not None:
            self.on_complete(self.result)
        return self.result
