"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="SnapCard Render Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Write rotating log files")
    log_dir: Path = Field(default=Path("./logs"), description="Log file directory")

    # Output Defaults and Ceilings
    default_width: int = Field(default=1080, description="Default render width")
    default_height: int = Field(default=1350, description="Default render height")
    default_pixel_scale: float = Field(default=2.0, description="Default device scale factor")
    max_width: int = Field(default=4000, description="Maximum render width")
    max_height: int = Field(default=4000, description="Maximum render height")
    max_pixel_scale: float = Field(default=4.0, description="Maximum device scale factor")
    max_markup_bytes: int = Field(
        default=5 * 1024 * 1024, description="Maximum size of resolved markup in bytes"
    )
    max_concurrent_jobs: int = Field(default=4, description="Maximum concurrent render jobs")

    # Browser Configuration
    browser_headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_executable_path: Optional[Path] = Field(
        default=None, description="Chromium executable; Playwright's bundled build when unset"
    )
    browser_extra_args: List[str] = Field(
        default=[], description="Extra Chromium command line switches"
    )
    launch_timeout: float = Field(default=30.0, description="Engine launch timeout in seconds")

    # Session Configuration
    idle_timeout: float = Field(
        default=300.0, description="Seconds without use before the engine is evicted"
    )
    idle_check_interval: float = Field(
        default=60.0, description="Seconds between idle eviction checks"
    )
    warm_start: bool = Field(default=True, description="Launch the engine at startup")

    # Readiness Timeouts (seconds)
    dom_load_timeout: float = Field(default=30.0, description="Document parse timeout")
    network_load_timeout: float = Field(default=60.0, description="Network quiescence timeout")
    font_ready_timeout: float = Field(default=5.0, description="Font readiness timeout")
    asset_timeout: float = Field(default=10.0, description="Per-asset load timeout")
    job_timeout: float = Field(default=90.0, description="Overall job timeout")

    # Template Configuration
    template_dir: Path = Field(
        default=Path("./templates"), description="Directory of on-disk markup templates"
    )
    date_format: str = Field(default="%B %d, %Y", description="strftime format for card dates")
    default_text_tag: str = Field(default="UPDATE", description="Tag label for the text card")
    default_image_tag: str = Field(default="NEWS", description="Tag label for the image card")
    background_selectors: List[str] = Field(
        default=["body", "[data-background]"],
        description="Elements whose CSS background image must load before capture",
    )

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

    @field_validator("browser_extra_args", "background_selectors", mode="before")
    @classmethod
    def parse_string_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse a list from a JSON array or a comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator(
        "idle_timeout",
        "idle_check_interval",
        "launch_timeout",
        "dom_load_timeout",
        "network_load_timeout",
        "font_ready_timeout",
        "asset_timeout",
        "job_timeout",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Timeouts and intervals must be positive."""
        if v <= 0:
            raise ValueError("Value must be greater than zero")
        return v

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="SNAPCARD_"
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
