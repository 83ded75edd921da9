"""
Template Store
==============

Registry mapping template identifiers to raw template text.
"""

from typing import Dict, List, Optional

from snippet_renderer.config.logging import get_logger
from snippet_renderer.core.errors import UnknownTemplateError

logger = get_logger(__name__)


class TemplateStore:
    """Template registry. Templates are stored verbatim and never validated here."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="template_store")
        self._templates: Dict[str, str] = {}

    def register(self, template: str, identifier: str) -> None:
        """Store a template, replacing any previous one under the same identifier."""
        replaced = identifier in self._templates
        self._templates[identifier] = template
        self.logger.debug(
            "Template registered",
            template_identifier=identifier,
            length=len(template),
            replaced=replaced,
        )

    def get(self, identifier: str) -> Optional[str]:
        return self._templates.get(identifier)

    def lookup(self, identifier: str) -> str:
        """
        Get a registered template.

        Raises:
            UnknownTemplateError: If nothing was registered under ``identifier``
        """
        try:
            return self._templates[identifier]
        except KeyError:
            raise UnknownTemplateError(identifier) from None

    def identifiers(self) -> List[str]:
        return list(self._templates)

    def clear(self) -> None:
        """Remove every registered template."""
        count = len(self._templates)
        self._templates.clear()
        self.logger.info("Templates cleared", count=count)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._templates

    def __len__(self) -> int:
        return len(self._templates)
