"""
Playwright Surface
==================

Rendering surface backed by a single headless Chromium page.

Markup is loaded with ``page.set_content`` in a background task; once the page
has loaded and a short settle delay has passed, the outcome is reported
through the completion channel. The render container is measured in the page
and snapshotted with a clipped screenshot.
"""

from typing import Any, Dict, Optional, TYPE_CHECKING
from contextlib import suppress
import asyncio
import math

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from snippet_renderer.config.settings import Settings, get_settings
from snippet_renderer.core.errors import SurfaceUnavailableError
from snippet_renderer.core.rendering.surface import RenderingSurface
from snippet_renderer.core.templates.engine import RENDER_CONTAINER_ID
from snippet_renderer.models.schemas import ContentRect

if TYPE_CHECKING:
    from snippet_renderer.core.queue.job import RenderJob

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-features=VizDisplayCompositor",
]

MEASURE_CONTAINER_SCRIPT = """
(containerId) => {
    const element = document.getElementById(containerId) || document.body;
    const rect = element.getBoundingClientRect();
    const zoom = parseFloat(window.getComputedStyle(document.body).zoom) || 1;
    return {
        x: rect.left + window.scrollX,
        y: rect.top + window.scrollY,
        width: rect.width,
        height: rect.height,
        zoom: zoom,
    };
}
"""


class PlaywrightSurface(RenderingSurface):
    """Headless Chromium page used as the shared rendering surface."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__()
        self.settings = settings or get_settings()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._load_task: Optional["asyncio.Task[None]"] = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    async def open(self) -> None:
        """
        Launch the browser and create the page.

        Raises:
            SurfaceUnavailableError: If the browser cannot be started
        """
        if self.is_open:
            return

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.playwright_headless,
                args=BROWSER_ARGS,
            )
            self._context = await self._browser.new_context(
                viewport={
                    "width": self.settings.default_viewport_width,
                    "height": self.settings.default_viewport_height,
                },
                device_scale_factor=self.settings.device_scale_factor,
            )
            page = await self._context.new_page()
            page.set_default_timeout(self.settings.playwright_timeout)
            self._page = page
        except Exception as e:
            self.logger.error("Failed to open rendering surface", error=str(e))
            await self.close()
            raise SurfaceUnavailableError(f"Rendering surface could not be opened: {e}") from e

        self.logger.info(
            "Rendering surface opened",
            headless=self.settings.playwright_headless,
            device_scale_factor=self.settings.device_scale_factor,
        )

    async def close(self) -> None:
        await self._cancel_load()
        self._page = None

        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

        self.release()
        self.logger.info("Rendering surface closed")

    def _require_page(self) -> Page:
        if self._page is None:
            raise SurfaceUnavailableError("Rendering surface is not open")
        return self._page

    async def resize(self, width: float, height: float) -> None:
        page = self._require_page()
        viewport = {"width": max(1, math.ceil(width)), "height": max(1, math.ceil(height))}
        await page.set_viewport_size(viewport)  # type: ignore[arg-type]

    async def load_markup(self, html: str) -> None:
        page = self._require_page()
        await self._cancel_load()
        self._load_task = asyncio.get_running_loop().create_task(
            self._load(page, html, self.current_job), name="surface-load"
        )

    async def _load(self, page: Page, html: str, job: Optional["RenderJob"]) -> None:
        try:
            await page.set_content(html, wait_until="load")
            await asyncio.sleep(self.settings.load_settle_delay)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning("Markup load failed", error=str(e))
            self.report_load_failed(e, job)
            return

        self.report_load_finished(job)

    async def _cancel_load(self) -> None:
        task = self._load_task
        self._load_task = None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def measure_content_rect(self) -> ContentRect:
        page = self._require_page()
        measured: Dict[str, Any] = await page.evaluate(MEASURE_CONTAINER_SCRIPT, RENDER_CONTAINER_ID)
        rect = ContentRect(
            x=measured["x"],
            y=measured["y"],
            width=measured["width"],
            height=measured["height"],
        )
        return rect.scaled(float(measured.get("zoom") or 1.0))

    async def snapshot(self, rect: ContentRect) -> Optional[bytes]:
        page = self._require_page()
        if rect.width <= 0 or rect.height <= 0:
            self.logger.warning("Render container has no area", width=rect.width, height=rect.height)
            return None

        return await page.screenshot(
            type="png",
            clip=rect.as_clip(),  # type: ignore[arg-type]
            full_page=True,
            omit_background=True,
        )
