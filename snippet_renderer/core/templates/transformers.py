"""
Snippet Transformers
====================

Ready-made strategies for the engine's ``snippet_transformer`` hook. Each one
takes ``(snippet, template)`` and returns ``(snippet, template)``; returning
``None`` for the template leaves it unchanged.

Hosts with their own preprocessing (font-size normalization, element
restructuring) plug in a callable with the same signature.
"""

import re
from typing import Callable, Mapping, Optional, Tuple, Union

from snippet_renderer.config.logging import get_logger
from snippet_renderer.core.templates.engine import ADDITIONAL_CSS_TOKEN, SnippetTransformer

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]*)\}\}")


class PlaceholderValueTransformer:
    """Fill ``{{key}}`` placeholders in the snippet from a mapping. Unknown keys are kept."""

    def __init__(self, replacements: Mapping[str, str]):
        self.replacements = dict(replacements)

    def _replace(self, match: "re.Match[str]") -> str:
        key = match.group(1).strip()
        if key in self.replacements:
            return str(self.replacements[key])
        logger.debug("No value for snippet placeholder", placeholder=key)
        return match.group(0)

    def __call__(self, snippet: str, template: str) -> Tuple[str, Optional[str]]:
        return PLACEHOLDER_PATTERN.sub(self._replace, snippet), None


class CSSInjectionTransformer:
    """
    Inject CSS into the template's caller-CSS slot.

    The slot token is kept after the injected rules so later stages can inject
    more; the engine blanks it during substitution. ``css`` may be a string or
    a callable computing rules from the snippet.
    """

    def __init__(self, css: Union[str, Callable[[str], str]]):
        self.css = css

    def __call__(self, snippet: str, template: str) -> Tuple[str, Optional[str]]:
        if ADDITIONAL_CSS_TOKEN not in template:
            logger.warning("Template has no CSS injection slot", token=ADDITIONAL_CSS_TOKEN)
            return snippet, None

        rules = self.css(snippet) if callable(self.css) else self.css
        return snippet, template.replace(ADDITIONAL_CSS_TOKEN, f"{rules}\n{ADDITIONAL_CSS_TOKEN}")


def chain_transformers(*transformers: SnippetTransformer) -> SnippetTransformer:
    """Compose transformers left to right into a single hook."""

    def chained(snippet: str, template: str) -> Tuple[str, Optional[str]]:
        for transformer in transformers:
            snippet, transformed = transformer(snippet, template)
            if transformed is not None:
                template = transformed
        return snippet, template

    return chained
