"""
Renderer Errors
===============

Exception hierarchy for the rendering pipeline.

``RenderError`` subclasses describe a single job going wrong. They are captured
on the job and delivered once through its result, never raised at the caller.
The remaining exceptions signal a misconfigured or misused renderer and are
raised directly.
"""

from typing import List, Optional, Sequence


class RenderError(Exception):
    """Base class for failures surfaced through a job result."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.identifier = identifier


class TemplateError(RenderError):
    """Exception raised when template substitution cannot proceed."""

    pass


class UnknownTemplateError(TemplateError):
    """Raised when a template identifier was never registered."""

    def __init__(self, template_identifier: str, identifier: Optional[str] = None):
        super().__init__(f"Template not registered: {template_identifier!r}", identifier)
        self.template_identifier = template_identifier


class InvalidTemplateError(TemplateError):
    """Raised when a template lacks required tokens or the render container."""

    def __init__(
        self,
        template_identifier: str,
        missing: Sequence[str],
        identifier: Optional[str] = None,
    ):
        self.template_identifier = template_identifier
        self.missing: List[str] = list(missing)
        super().__init__(
            f"Template {template_identifier!r} is missing: {', '.join(self.missing)}",
            identifier,
        )


class InvalidAttributesError(RenderError):
    """Raised when caller-supplied style attributes fail validation."""

    pass


class SurfaceLoadError(RenderError):
    """Raised when the rendering surface fails to load markup."""

    pass


class SnapshotError(RenderError):
    """Raised when measuring or snapshotting the rendered content fails."""

    pass


class RendererConfigurationError(Exception):
    """The renderer is misconfigured, e.g. the built-in default template is unusable."""

    pass


class RendererBusyError(Exception):
    """Teardown was attempted while jobs were still queued or running."""

    pass


class SchedulerStoppedError(Exception):
    """A job was submitted to a scheduler that is not accepting work."""

    pass


class InvalidStateTransitionError(Exception):
    """A render job was asked to move to a state it cannot reach."""

    pass


class SurfaceBusyError(Exception):
    """A job tried to claim the rendering surface while another job holds it."""

    pass


class SurfaceUnavailableError(Exception):
    """The rendering surface could not be opened or is already closed."""

    pass
