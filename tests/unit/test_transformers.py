"""
Unit Tests for Snippet Transformers
===================================

Tests for the ready-made snippet transformer strategies.
"""

from snippet_renderer.core.templates.engine import ADDITIONAL_CSS_TOKEN, DEFAULT_TEMPLATE_IDENTIFIER
from snippet_renderer.core.templates.transformers import (
    CSSInjectionTransformer,
    PlaceholderValueTransformer,
    chain_transformers,
)


class TestPlaceholderValueTransformer:
    """Test ``{{key}}`` placeholder filling."""

    def test_replaces_known_keys(self):
        transformer = PlaceholderValueTransformer({"name": "Ada", "count": "3"})
        snippet, template = transformer("<p>{{name}} has {{ count }}</p>", "T")
        assert snippet == "<p>Ada has 3</p>"
        assert template is None

    def test_keeps_unknown_keys(self):
        snippet, _ = PlaceholderValueTransformer({})("<p>{{missing}}</p>", "T")
        assert snippet == "<p>{{missing}}</p>"

    def test_non_string_values(self):
        snippet, _ = PlaceholderValueTransformer({"n": 5})("{{n}}", "T")  # type: ignore[dict-item]
        assert snippet == "5"


class TestCSSInjectionTransformer:
    """Test CSS injection into the template slot."""

    def test_injects_and_keeps_slot(self):
        snippet, template = CSSInjectionTransformer("p { color: red; }")("<p/>", f"<style>{ADDITIONAL_CSS_TOKEN}</style>")
        assert snippet == "<p/>"
        assert template == f"<style>p {{ color: red; }}\n{ADDITIONAL_CSS_TOKEN}</style>"

    def test_callable_css(self):
        transformer = CSSInjectionTransformer(lambda snippet: f"/* {len(snippet)} */")
        _, template = transformer("abcd", ADDITIONAL_CSS_TOKEN)
        assert template is not None
        assert template.startswith("/* 4 */")

    def test_template_without_slot_unchanged(self):
        _, template = CSSInjectionTransformer("p {}")("<p/>", "<style></style>")
        assert template is None


class TestChainTransformers:
    """Test transformer composition."""

    def test_applied_in_order(self):
        chained = chain_transformers(
            PlaceholderValueTransformer({"who": "world"}),
            lambda snippet, template: (snippet.upper(), None),
            CSSInjectionTransformer("b {}"),
        )
        snippet, template = chained("hello {{who}}", ADDITIONAL_CSS_TOKEN)
        assert snippet == "HELLO WORLD"
        assert template == f"b {{}}\n{ADDITIONAL_CSS_TOKEN}"

    def test_with_engine(self, engine):
        engine.snippet_transformer = chain_transformers(
            PlaceholderValueTransformer({"title": "Report"}),
            CSSInjectionTransformer(".title { font-weight: bold; }"),
        )
        html = engine.render('<p class="title">{{title}}</p>', DEFAULT_TEMPLATE_IDENTIFIER)
        assert '<p class="title">Report</p>' in html
        assert ".title { font-weight: bold; }" in html
        assert ADDITIONAL_CSS_TOKEN not in html
