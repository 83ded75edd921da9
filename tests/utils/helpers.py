"""
Test Helpers
============

Helper functions for common testing operations.
"""

import asyncio
import io
import time
from typing import Callable, Tuple

from PIL import Image  # type: ignore


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
    error_message: str = "Condition not met within timeout",
) -> None:
    """Wait for a condition to become true."""
    start_time = time.monotonic()

    while time.monotonic() - start_time < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise TimeoutError(error_message)


def create_test_png(
    width: int = 100, height: int = 100, color: Tuple[int, int, int, int] = (200, 30, 30, 255)
) -> bytes:
    """Create a solid-color RGBA PNG."""
    image = Image.new("RGBA", (max(1, width), max(1, height)), color)
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


class TestTimer:
    """Context manager measuring wall-clock time."""

    __test__ = False

    def __init__(self) -> None:
        self.start = 0.0
        self.elapsed = 0.0

    def __enter__(self) -> "TestTimer":
        self.start = time.monotonic()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.elapsed = time.monotonic() - self.start


MINIMAL_TEMPLATE = (
    "<html><head><style>"
    "body { font-family: '__FONT_FAMILY__'; font-size: __FONT_SIZE__pt; line-height: __LINE_HEIGHT__; "
    "color: __TEXT_COLOR__; background: __BACKGROUND_COLOR__; }"
    " #render_container { width: __OUTPUT_WIDTH__px; __OUTPUT_HEIGHT__; }"
    "</style></head><body>"
    '<div id="render_container">__HTML_BODY__</div>'
    "</body></html>"
)
