"""
Snippet Renderer
================

Render HTML snippets into PNG images through a headless browser.

This package provides:
- A sequential render queue guarding a single rendering surface
- Template registration and typed placeholder substitution
- An in-memory result cache keyed by job identifier
- A Playwright-backed rendering surface
"""

__version__ = "1.0.0"
__author__ = "Snippet Renderer Team"

from snippet_renderer.core.errors import RenderError
from snippet_renderer.core.renderer import HTMLImageRenderer
from snippet_renderer.core.templates.engine import DEFAULT_TEMPLATE_IDENTIFIER
from snippet_renderer.models.schemas import Color, FontSpec, JobState, RenderResult, StyleAttributes

__all__ = [
    "HTMLImageRenderer",
    "DEFAULT_TEMPLATE_IDENTIFIER",
    "RenderError",
    "RenderResult",
    "JobState",
    "StyleAttributes",
    "FontSpec",
    "Color",
]
