"""
Raster Helpers
==============

Decode and optionally optimize PNG snapshots with Pillow.
"""

from typing import Any
import io

from PIL import Image, UnidentifiedImageError  # type: ignore

from snippet_renderer.config.logging import get_logger
from snippet_renderer.models.schemas import RenderedImage

logger = get_logger(__name__)


class ImageDecodeError(Exception):
    """Exception raised when snapshot bytes are not a readable image."""

    pass


def optimize_png(png_bytes: bytes) -> bytes:
    """
    Re-encode PNG bytes with maximum compression.

    Args:
        png_bytes: Original PNG bytes

    Returns:
        Optimized PNG bytes, or the original bytes if they were already smaller
    """
    image: Any = Image.open(io.BytesIO(png_bytes))
    output = io.BytesIO()
    image.save(output, format="PNG", optimize=True, compress_level=9)
    optimized_bytes = output.getvalue()

    if len(optimized_bytes) >= len(png_bytes):
        return png_bytes

    reduction = (1 - len(optimized_bytes) / len(png_bytes)) * 100
    logger.debug(
        "PNG optimization completed",
        original_size=len(png_bytes),
        optimized_size=len(optimized_bytes),
        reduction_percent=round(reduction, 2),
    )
    return optimized_bytes


def rendered_image_from_png(png_bytes: bytes, optimize: bool = False) -> RenderedImage:
    """
    Wrap snapshot bytes as a ``RenderedImage``.

    Raises:
        ImageDecodeError: If the bytes cannot be decoded
    """
    try:
        with Image.open(io.BytesIO(png_bytes)) as image:
            image.load()
            width, height = image.size
        if optimize:
            png_bytes = optimize_png(png_bytes)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f"Snapshot is not a readable image: {e}") from e

    return RenderedImage(png_data=png_bytes, width=width, height=height, file_size=len(png_bytes))
