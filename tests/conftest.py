"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides test settings, the template engine, and a fake rendering surface.
"""

import os

os.environ.setdefault("SNIPPET_RENDERER_ENVIRONMENT", "testing")

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from snippet_renderer.config.settings import Settings
from snippet_renderer.core.cache.result_cache import ResultCache
from snippet_renderer.core.renderer import HTMLImageRenderer
from snippet_renderer.core.rendering.surface import CompletionChannel
from snippet_renderer.core.templates.engine import TemplateEngine

from tests.utils.mocks import FakeSurface


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with instant load reporting and paths under a temp directory."""
    return Settings(
        environment="testing",
        debug=True,
        log_level="DEBUG",
        storage_path=tmp_path / "storage",
        html_debug_path=tmp_path / "html",
        load_settle_delay=0.0,
        surface_timeout=2.0,
    )


@pytest.fixture
def engine(test_settings: Settings) -> TemplateEngine:
    return TemplateEngine(settings=test_settings)


@pytest.fixture
def cache() -> ResultCache:
    return ResultCache()


@pytest.fixture
def fake_surface() -> FakeSurface:
    return FakeSurface()


@pytest_asyncio.fixture
async def channel() -> AsyncGenerator[CompletionChannel, None]:
    """Running completion channel."""
    completion_channel = CompletionChannel()
    completion_channel.start()
    yield completion_channel
    await completion_channel.stop()


@pytest_asyncio.fixture
async def bound_surface(
    fake_surface: FakeSurface, channel: CompletionChannel
) -> AsyncGenerator[FakeSurface, None]:
    """Fake surface bound to a running channel and opened."""
    fake_surface.bind(channel)
    await fake_surface.open()
    yield fake_surface
    await fake_surface.close()


@pytest_asyncio.fixture
async def renderer(
    test_settings: Settings, fake_surface: FakeSurface
) -> AsyncGenerator[HTMLImageRenderer, None]:
    """Started renderer backed by the fake surface."""
    html_renderer = HTMLImageRenderer(settings=test_settings, surface=fake_surface)
    await html_renderer.start()
    yield html_renderer
    if html_renderer.is_started:
        await html_renderer.scheduler.stop()
        await html_renderer.teardown()
