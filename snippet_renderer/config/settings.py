"""
Application Settings
===================

Renderer settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path


class Settings(BaseSettings):
    """Main renderer settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="Snippet Renderer", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Storage Configuration
    storage_path: Path = Field(default=Path("./storage"), description="Storage directory path")
    write_html_to_disk: bool = Field(
        default=False, description="Write substituted markup of every job to disk for inspection"
    )
    html_debug_path: Path = Field(
        default=Path("./storage/html"), description="Directory for substituted markup dumps"
    )

    # Template Configuration
    default_template_path: Optional[Path] = Field(
        default=None, description="Override for the built-in default template file"
    )
    fallback_font_family: str = Field(
        default="Helvetica", description="Family used in place of known-broken system aliases"
    )
    font_family_aliases: List[str] = Field(
        default=[".AppleSystemUIFont", ".SF UI Text"],
        description="Font family names remapped to the fallback family",
    )

    # Rendering Surface Configuration
    default_viewport_width: int = Field(default=1024, gt=0, description="Initial surface width")
    default_viewport_height: int = Field(
        default=768, gt=0, description="Surface height used when a job has no target height"
    )
    device_scale_factor: float = Field(default=1.0, gt=0, le=3.0, description="Device pixel ratio")
    load_settle_delay: float = Field(
        default=0.3, ge=0, description="Seconds to wait after a load before reporting it finished"
    )
    surface_timeout: float = Field(
        default=30.0, gt=0, description="Seconds a job waits for the surface load callback"
    )
    optimize_png: bool = Field(default=False, description="Re-encode snapshots as optimized PNG")

    # Browser Configuration
    playwright_headless: bool = Field(default=True, description="Run browser in headless mode")
    playwright_timeout: int = Field(default=30000, description="Playwright timeout in milliseconds")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("font_family_aliases", mode="before")
    @classmethod
    def parse_font_family_aliases(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse font family aliases from string or list."""
        if isinstance(v, str):
            # Handle JSON-like string: [".SF UI Text"]
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Handle comma-separated string
            return [alias.strip() for alias in v.split(",") if alias.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="SNIPPET_RENDERER_",
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
