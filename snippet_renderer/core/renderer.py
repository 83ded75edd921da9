"""
HTML Image Renderer
===================

Caller-facing entry point. A renderer owns one rendering surface, the template
engine, the result cache and the job scheduler, and is constructed once and
passed to whoever needs to render.

    async with HTMLImageRenderer() as renderer:
        result = await renderer.render("<p>Hello</p>", "hello")
        result.image.png_data
"""

from typing import Any, Callable, Mapping, Optional, Union
import asyncio

from snippet_renderer.config.logging import get_logger
from snippet_renderer.config.settings import Settings, get_settings
from snippet_renderer.core.cache.result_cache import ResultCache
from snippet_renderer.core.errors import RendererBusyError, SchedulerStoppedError
from snippet_renderer.core.queue.job import RenderJob
from snippet_renderer.core.queue.scheduler import JobScheduler
from snippet_renderer.core.rendering.playwright_surface import PlaywrightSurface
from snippet_renderer.core.rendering.surface import CompletionChannel, RenderingSurface
from snippet_renderer.core.templates.engine import (
    DEFAULT_TEMPLATE_IDENTIFIER,
    SnippetTransformer,
    TemplateEngine,
)
from snippet_renderer.models.schemas import JobState, RenderResult, StyleAttributes

logger = get_logger(__name__)

CompletionCallback = Callable[[RenderResult], None]


class _Delivery:
    """Hands a job's result to the caller on the caller's loop."""

    def __init__(
        self,
        future: "asyncio.Future[RenderResult]",
        loop: asyncio.AbstractEventLoop,
        callback: Optional[CompletionCallback],
    ):
        self.future = future
        self.loop = loop
        self.callback = callback

    def __call__(self, result: RenderResult) -> None:
        try:
            self.loop.call_soon_threadsafe(self._complete, result)
        except RuntimeError:
            logger.error("Completion loop is closed, result dropped", identifier=result.identifier)

    def _complete(self, result: RenderResult) -> None:
        if result.state == JobState.CANCELLED:
            self.future.cancel()
            return
        if self.future.done():
            # The caller cancelled while the job was finishing.
            return

        self.future.set_result(result)
        if self.callback is None:
            return
        try:
            self.callback(result)
        except Exception as e:
            logger.error(
                "Completion callback raised",
                identifier=result.identifier,
                error=str(e),
                exc_info=True,
            )


class HTMLImageRenderer:
    """
    Render HTML snippets into PNG images, one at a time, with caching.

    Args:
        settings: Configuration; defaults to the process settings
        surface: Rendering surface; defaults to a ``PlaywrightSurface``
        engine: Template engine; built from ``settings`` when omitted
        cache: Result cache; a fresh one when omitted
        default_attributes: Attribute defaults for a newly built engine
        snippet_transformer: Transformer hook for a newly built engine
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        surface: Optional[RenderingSurface] = None,
        engine: Optional[TemplateEngine] = None,
        cache: Optional[ResultCache] = None,
        default_attributes: Optional[StyleAttributes] = None,
        snippet_transformer: Optional[SnippetTransformer] = None,
    ):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="html_image_renderer")  # structlog.BoundLoggerBase
        self.engine = engine or TemplateEngine(
            settings=self.settings,
            default_attributes=default_attributes,
            snippet_transformer=snippet_transformer,
        )
        self.cache = cache if cache is not None else ResultCache()
        self.surface = surface or PlaywrightSurface(self.settings)
        self.channel = CompletionChannel()
        self.scheduler = JobScheduler()
        self._started = False
        self._torn_down = False

    # Lifecycle

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        Open the rendering surface and start processing jobs.

        Raises:
            SchedulerStoppedError: If the renderer was already torn down
            SurfaceUnavailableError: If the surface cannot be opened
        """
        if self._torn_down:
            raise SchedulerStoppedError("Renderer was torn down and cannot be restarted")
        if self._started:
            return

        loop = asyncio.get_running_loop()
        self.channel.start()
        self.surface.bind(self.channel, loop)
        try:
            await self.surface.open()
        except Exception:
            await self.channel.stop()
            raise
        self.scheduler.start()
        self._started = True
        self.logger.info("Renderer started", surface=type(self.surface).__name__)

    async def __aenter__(self) -> "HTMLImageRenderer":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if not self._started:
            return
        if exc_type is not None:
            self.scheduler.cancel_all()
        elif self.scheduler.is_suspended and not self.scheduler.drained():
            self.logger.warning(
                "Leaving renderer context while suspended, cancelling queued jobs",
                pending=self.scheduler.pending_count,
            )
            self.scheduler.cancel_all()
        if self.scheduler.is_running:
            await self.scheduler.join()
        await self.teardown()

    async def teardown(self) -> None:
        """
        Release the rendering surface and clear templates and cache.

        Raises:
            RendererBusyError: If jobs are still queued or running; nothing is released
        """
        if not self.scheduler.drained():
            running = self.scheduler.running_job
            self.logger.error(
                "Teardown refused while jobs remain",
                pending=self.scheduler.pending_count,
                running=running.identifier if running else None,
            )
            raise RendererBusyError(
                f"Cannot tear down with {self.scheduler.pending_count} queued job(s)"
                f"{' and one running' if running else ''}"
            )

        await self.scheduler.stop()
        await self.channel.stop()
        await self.surface.close()
        self.engine.clear_templates()
        self.cache.clear()
        self._started = False
        self._torn_down = True
        self.logger.info("Renderer torn down", operations_requested=self.operations_requested)

    # Rendering

    def render(
        self,
        html_snippet: str,
        identifier: str,
        template_identifier: Optional[str] = DEFAULT_TEMPLATE_IDENTIFIER,
        attributes: Union[StyleAttributes, Mapping[str, Any], None] = None,
        ignore_cache: bool = False,
        cache_result: bool = True,
        completion: Optional[CompletionCallback] = None,
        completion_loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> "asyncio.Future[RenderResult]":
        """
        Queue a snippet for rendering.

        The result is always delivered asynchronously, on ``completion_loop`` or
        else the loop ``render`` was called from, by resolving the returned
        future and then calling ``completion``. Failures arrive as a result in
        the FAILED state. Cancelling the future cancels the job.

        Args:
            html_snippet: HTML fragment to render
            identifier: Job identifier, also the cache key
            template_identifier: Registered template, or None to load the snippet as-is
            attributes: Style overrides merged over the defaults
            ignore_cache: Render even if ``identifier`` is cached
            cache_result: Cache the freshly rendered image under ``identifier``
            completion: Called with the result after the future resolves
            completion_loop: Loop to deliver on when not the calling one

        Returns:
            Future resolving to the ``RenderResult``

        Raises:
            SchedulerStoppedError: If the renderer is not started
            RuntimeError: If there is neither a running loop nor ``completion_loop``
        """
        if not self._started:
            raise SchedulerStoppedError(f"Cannot render {identifier!r}, renderer is not started")

        loop = completion_loop or _running_loop()
        if loop is None:
            raise RuntimeError("render() needs a running event loop or an explicit completion_loop")

        future: "asyncio.Future[RenderResult]" = loop.create_future()
        delivery = _Delivery(future, loop, completion)

        if not ignore_cache:
            cached = self.cache.get(identifier)
            if cached is not None:
                self.logger.debug("Served from cache at submission", identifier=identifier)
                delivery(
                    RenderResult(
                        identifier=identifier,
                        state=JobState.COMPLETED,
                        image=cached,
                        was_cached=True,
                    )
                )
                return future

        job = RenderJob(
            html_snippet,
            identifier,
            engine=self.engine,
            cache=self.cache,
            surface=self.surface,
            settings=self.settings,
            template_identifier=template_identifier,
            attributes=attributes,
            ignore_cache=ignore_cache,
            should_cache=cache_result,
            on_complete=delivery,
        )
        self.scheduler.submit(job)
        future.add_done_callback(lambda f: job.cancel() if f.cancelled() else None)
        return future

    # Templates

    def register_template(self, template: str, identifier: str) -> None:
        self.engine.register_template(template, identifier)

    def default_template(self) -> str:
        return self.engine.default_template()

    def clear_templates(self) -> None:
        self.engine.clear_templates()

    @property
    def snippet_transformer(self) -> Optional[SnippetTransformer]:
        return self.engine.snippet_transformer

    @snippet_transformer.setter
    def snippet_transformer(self, transformer: Optional[SnippetTransformer]) -> None:
        self.engine.snippet_transformer = transformer

    # Queue control

    @property
    def is_suspended(self) -> bool:
        return self.scheduler.is_suspended

    @is_suspended.setter
    def is_suspended(self, value: bool) -> None:
        self.scheduler.is_suspended = value

    @property
    def operations_requested(self) -> int:
        """Jobs handed to the scheduler so far; cache hits at submission are not counted."""
        return self.scheduler.operations_requested

    def drained(self) -> bool:
        return self.scheduler.drained()

    async def join(self) -> None:
        """
        Wait until every submitted job has finished.

        Raises:
            RendererBusyError: If jobs are queued while the renderer is suspended
        """
        await self.scheduler.join()

    def cancel_all(self) -> int:
        return self.scheduler.cancel_all()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
