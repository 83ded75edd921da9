"""
Pydantic Models and Schemas
===========================

Core data models for style attributes, render results, and surface geometry.
All models include validation and type hints.
"""

from typing import Any, Dict, Mapping, Optional, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Enums
class JobState(str, Enum):
    """Render job lifecycle states."""
    QUEUED = "queued"
    RUNNING = "running"
    AWAITING_SURFACE_LOAD = "awaiting_surface_load"
    AWAITING_SNAPSHOT = "awaiting_snapshot"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


# Style Models
class Color(BaseModel):
    """RGBA color with 8-bit channels."""
    red: int = Field(0, ge=0, le=255)
    green: int = Field(0, ge=0, le=255)
    blue: int = Field(0, ge=0, le=255)
    alpha: int = Field(255, ge=0, le=255)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def coerce_color(cls, value: Any) -> Any:
        """Accept hex strings and channel tuples in addition to mappings."""
        if isinstance(value, str):
            return cls._parse_hex(value)
        if isinstance(value, (tuple, list)):
            if len(value) not in (3, 4):
                raise ValueError("Color tuples need 3 or 4 channels")
            return dict(zip(("red", "green", "blue", "alpha"), value))
        return value

    @staticmethod
    def _parse_hex(value: str) -> Dict[str, int]:
        digits = value.strip()
        if not digits.startswith("#"):
            raise ValueError(f"Hex colors must start with '#': {value!r}")
        digits = digits[1:]
        if len(digits) not in (6, 8):
            raise ValueError(f"Hex colors need 6 or 8 digits: {value!r}")
        try:
            number = int(digits, 16)
        except ValueError:
            raise ValueError(f"Invalid hex color: {value!r}")

        if len(digits) == 6:
            number = (number << 8) | 0xFF
        return {
            "red": (number >> 24) & 0xFF,
            "green": (number >> 16) & 0xFF,
            "blue": (number >> 8) & 0xFF,
            "alpha": number & 0xFF,
        }

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """Build a color from ``#rrggbb`` or ``#rrggbbaa``."""
        return cls.model_validate(value)

    def to_hex(self, include_hash: bool = True) -> str:
        """Render as ``#rrggbb``, or ``#rrggbbaa`` when not fully opaque."""
        prefix = "#" if include_hash else ""
        if self.alpha == 255:
            return f"{prefix}{self.red:02x}{self.green:02x}{self.blue:02x}"
        return f"{prefix}{self.red:02x}{self.green:02x}{self.blue:02x}{self.alpha:02x}"


class FontSpec(BaseModel):
    """Font family and point size."""
    family: str = Field("Helvetica", min_length=1, description="Font family name")
    size: float = Field(16.0, gt=0, description="Point size")

    model_config = ConfigDict(frozen=True)


class StyleAttributes(BaseModel):
    """
    Typed style attributes substituted into a template.

    Every field has a default, so a merged attribute set is always complete.
    Overrides are partial instances: only the fields a caller explicitly set
    take part in a merge.
    """
    line_height: float = Field(1.0, gt=0, description="CSS line-height multiplier")
    font: FontSpec = Field(default_factory=FontSpec, description="Text font")
    text_color: Color = Field(default_factory=lambda: Color(red=0, green=0, blue=0))
    background_color: Color = Field(default_factory=lambda: Color(red=255, green=255, blue=255))
    target_width: float = Field(300.0, gt=0, description="Output width in points")
    target_height: Optional[float] = Field(
        None, gt=0, description="Output height; None sizes the image to its content"
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("target_height", mode="before")
    @classmethod
    def zero_height_means_natural(cls, v: Any) -> Any:
        """Treat a zero height as 'no target height'."""
        if v == 0:
            return None
        return v

    @property
    def font_family(self) -> str:
        return self.font.family

    @property
    def font_size_pt(self) -> float:
        return self.font.size

    def merged(
        self, overrides: Union["StyleAttributes", Mapping[str, Any], None]
    ) -> "StyleAttributes":
        """
        Return these attributes updated with the fields ``overrides`` sets.

        Args:
            overrides: Partial attributes or a mapping of field names to values

        Returns:
            Merged attributes; the caller's values win on collision

        Raises:
            pydantic.ValidationError: If a mapping holds unknown keys or bad values
        """
        if overrides is None:
            return self
        if not isinstance(overrides, StyleAttributes):
            overrides = StyleAttributes.model_validate(dict(overrides))

        update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
        return self.model_copy(update=update)


# Surface Models
class ContentRect(BaseModel):
    """Rectangle reported by the rendering surface, in CSS pixels."""
    x: float = 0.0
    y: float = 0.0
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)

    def scaled(self, factor: float) -> "ContentRect":
        return ContentRect(
            x=self.x * factor,
            y=self.y * factor,
            width=self.width * factor,
            height=self.height * factor,
        )

    def as_clip(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


# Rendering Models
class RenderedImage(BaseModel):
    """PNG snapshot produced by the rendering surface."""
    png_data: bytes = Field(..., description="PNG binary data", exclude=True)
    width: int = Field(..., ge=0, description="Image width in pixels")
    height: int = Field(..., ge=0, description="Image height in pixels")
    file_size: int = Field(..., ge=0, description="File size in bytes")

    model_config = ConfigDict(frozen=True)


class RenderResult(BaseModel):
    """Terminal outcome of one render request."""
    identifier: str = Field(..., description="Job identifier and cache key")
    state: JobState = Field(..., description="Terminal job state")
    image: Optional[RenderedImage] = Field(None, description="Rendered image if successful")
    was_cached: bool = Field(False, description="Whether the image came from the cache")
    error: Optional[Exception] = Field(None, description="Failure cause if unsuccessful")
    elapsed: float = Field(0.0, ge=0, description="Wall-clock seconds spent on the job")
    submission_index: Optional[int] = Field(None, description="Scheduler submission index")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.COMPLETED and self.image is not None
