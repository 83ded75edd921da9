"""
Result Cache
============

Unbounded in-memory mapping from job identifier to rendered image.

There is no eviction policy and no TTL: callers control growth per job with
``cache_result`` and ``ignore_cache``. Writes are not synchronized; the
scheduler runs one job at a time, which keeps writers serialized.
"""

from typing import Any, Dict, Optional

from snippet_renderer.config.logging import get_logger
from snippet_renderer.models.schemas import RenderedImage

logger = get_logger(__name__)


class ResultCache:
    """Job identifier to image cache."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="result_cache")
        self._entries: Dict[str, RenderedImage] = {}

    def get(self, key: str) -> Optional[RenderedImage]:
        return self._entries.get(key)

    def put(self, key: str, image: RenderedImage) -> None:
        overwritten = key in self._entries
        self._entries[key] = image
        self.logger.debug(
            "Cached render result", key=key, file_size=image.file_size, overwritten=overwritten
        )

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self.logger.info("Result cache cleared", entries=count)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
