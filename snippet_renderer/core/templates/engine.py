"""
Template Engine
===============

Merge an HTML snippet and typed style attributes into a registered template.
Templates are plain HTML documents carrying fixed placeholder tokens; every
token is replaced textually, all occurrences at once, in a fixed order.
"""

from typing import Any, Callable, List, Mapping, Optional, Tuple, Union
from pathlib import Path

from pydantic import ValidationError

from snippet_renderer.config.logging import get_logger
from snippet_renderer.config.settings import Settings, get_settings
from snippet_renderer.core.errors import (
    InvalidAttributesError,
    InvalidTemplateError,
    RendererConfigurationError,
)
from snippet_renderer.core.templates.store import TemplateStore
from snippet_renderer.models.schemas import StyleAttributes

logger = get_logger(__name__)


LINE_HEIGHT_TOKEN = "__LINE_HEIGHT__"
FONT_SIZE_TOKEN = "__FONT_SIZE__"
TEXT_COLOR_TOKEN = "__TEXT_COLOR__"
BACKGROUND_COLOR_TOKEN = "__BACKGROUND_COLOR__"
TARGET_WIDTH_TOKEN = "__OUTPUT_WIDTH__"
TARGET_HEIGHT_TOKEN = "__OUTPUT_HEIGHT__"
BODY_TOKEN = "__HTML_BODY__"
FONT_FAMILY_TOKEN = "__FONT_FAMILY__"
ADDITIONAL_CSS_TOKEN = "__ADDITIONAL_CSS__"

REQUIRED_TOKENS: Tuple[str, ...] = (
    LINE_HEIGHT_TOKEN,
    FONT_SIZE_TOKEN,
    TEXT_COLOR_TOKEN,
    BACKGROUND_COLOR_TOKEN,
    TARGET_WIDTH_TOKEN,
    TARGET_HEIGHT_TOKEN,
    BODY_TOKEN,
    FONT_FAMILY_TOKEN,
)

RENDER_CONTAINER_ID = "render_container"
RENDER_CONTAINER_MARKER = f'<div id="{RENDER_CONTAINER_ID}"'

DEFAULT_TEMPLATE_IDENTIFIER = "++SnippetRendererDefaultTemplate++"
DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "default_template.html"

NATURAL_HEIGHT_CSS = "height: 100%"

# (snippet, template) -> (snippet, template or None for "unchanged")
SnippetTransformer = Callable[[str, str], Tuple[str, Optional[str]]]


class TemplateEngine:
    """Template registry front-end and placeholder substitution."""

    def __init__(
        self,
        store: Optional[TemplateStore] = None,
        settings: Optional[Settings] = None,
        default_attributes: Optional[StyleAttributes] = None,
        snippet_transformer: Optional[SnippetTransformer] = None,
    ):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="template_engine")  # structlog.BoundLoggerBase
        self.store = store if store is not None else TemplateStore()
        self.default_attributes = default_attributes or StyleAttributes()
        self.snippet_transformer = snippet_transformer

        self._default_template = self._load_default_template()
        self.store.register(self._default_template, DEFAULT_TEMPLATE_IDENTIFIER)

    def _load_default_template(self) -> str:
        """
        Read and validate the built-in default template.

        Raises:
            RendererConfigurationError: If the file is unreadable or invalid
        """
        path = Path(self.settings.default_template_path or DEFAULT_TEMPLATE_PATH)
        try:
            template = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RendererConfigurationError(f"Default template could not be read from {path}: {e}") from e

        missing = self.missing_tokens(template)
        if missing:
            raise RendererConfigurationError(
                f"Default template {path} is missing: {', '.join(missing)}"
            )
        return template

    # Registration API

    def register_template(self, template: str, identifier: str) -> None:
        self.store.register(template, identifier)

    def default_template(self) -> str:
        return self._default_template

    def clear_templates(self) -> None:
        self.store.clear()

    # Validation

    @staticmethod
    def missing_tokens(template: str) -> List[str]:
        """List required tokens, and the render container marker, absent from ``template``."""
        missing = [token for token in REQUIRED_TOKENS if token not in template]
        if RENDER_CONTAINER_MARKER not in template:
            missing.append(RENDER_CONTAINER_MARKER)
        return missing

    def validate_template(self, template: str) -> bool:
        missing = self.missing_tokens(template)
        for token in missing:
            self.logger.debug("Template lacks required content", missing=token)
        return not missing

    # Attributes

    def merge_attributes(
        self, overrides: Union[StyleAttributes, Mapping[str, Any], None] = None
    ) -> StyleAttributes:
        """
        Merge caller overrides over the default attribute set.

        Raises:
            InvalidAttributesError: If the overrides do not validate
        """
        try:
            return self.default_attributes.merged(overrides)
        except ValidationError as e:
            raise InvalidAttributesError(f"Invalid style attributes: {e}") from e

    def resolve_font_family(self, family: str) -> str:
        """Map known-broken system font aliases to the fallback family."""
        if family in self.settings.font_family_aliases:
            return self.settings.fallback_font_family
        return family

    def display_values(self, attributes: StyleAttributes) -> List[Tuple[str, str]]:
        """Token/value pairs in substitution order, body excluded."""
        if attributes.target_height is None:
            height_css = NATURAL_HEIGHT_CSS
        else:
            height_css = f"min-height: {int(attributes.target_height)}px"

        return [
            (LINE_HEIGHT_TOKEN, "%.1f" % attributes.line_height),
            (FONT_SIZE_TOKEN, str(int(attributes.font_size_pt))),
            (FONT_FAMILY_TOKEN, self.resolve_font_family(attributes.font_family)),
            (TARGET_WIDTH_TOKEN, str(int(attributes.target_width))),
            (TARGET_HEIGHT_TOKEN, height_css),
            (TEXT_COLOR_TOKEN, attributes.text_color.to_hex()),
            (BACKGROUND_COLOR_TOKEN, attributes.background_color.to_hex()),
            (ADDITIONAL_CSS_TOKEN, ""),
        ]

    # Rendering

    def render(
        self,
        snippet: str,
        template_identifier: str,
        attributes: Union[StyleAttributes, Mapping[str, Any], None] = None,
    ) -> str:
        """
        Produce final markup for a snippet.

        Args:
            snippet: HTML fragment to embed
            template_identifier: Registered template to embed it in
            attributes: Overrides merged over the default attribute set

        Returns:
            Substituted HTML document

        Raises:
            UnknownTemplateError: If the template was never registered
            InvalidTemplateError: If the template lacks required tokens
            InvalidAttributesError: If the attributes do not validate
        """
        template = self.store.lookup(template_identifier)
        merged = self.merge_attributes(attributes)

        snippet, template = self._apply_transformer(snippet, template)

        missing = self.missing_tokens(template)
        if missing:
            self.logger.warning(
                "Template failed validation",
                template_identifier=template_identifier,
                missing=missing,
            )
            raise InvalidTemplateError(template_identifier, missing)

        html = self.substitute(snippet, template, merged)
        self.logger.debug(
            "Template substitution completed",
            template_identifier=template_identifier,
            html_length=len(html),
        )
        return html

    def _apply_transformer(self, snippet: str, template: str) -> Tuple[str, str]:
        if self.snippet_transformer is None:
            return snippet, template

        transformed_snippet, transformed_template = self.snippet_transformer(snippet, template)
        if transformed_template is None:
            transformed_template = template
        return transformed_snippet, transformed_template

    def substitute(self, content: str, template: str, attributes: StyleAttributes) -> str:
        """Replace every token in ``template``; the body goes last."""
        substituted = template
        for token, value in self.display_values(attributes):
            substituted = substituted.replace(token, value)
        return substituted.replace(BODY_TOKEN, content)
