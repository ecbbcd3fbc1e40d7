"""
Pydantic Models and Schemas
===========================

Core data models for render requests, engine introspection, render results and
API responses.
"""

from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from snapcard.config.settings import Settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class EngineState(str, Enum):
    """Lifecycle state of the browser engine handle."""
    ABSENT = "absent"
    LAUNCHING = "launching"
    READY = "ready"
    FAILED = "failed"


class StageStatus(str, Enum):
    """Outcome of one readiness stage."""
    OK = "ok"
    TIMEOUT = "timeout"
    ERROR = "error"


# Request Models
class ContentFields(BaseModel):
    """Named content fields substituted into a card template."""
    headline: str = Field("", description="Card headline")
    summary: str = Field("", description="Card summary paragraph")
    tag: Optional[str] = Field(None, description="Small label above the headline")
    date: Optional[str] = Field(None, description="Date line; render time when omitted")
    background_image_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("background_image_url", "backgroundImageUrl"),
        description="Background image URL for the image card",
    )

    # Extra keys are passed through to on-disk templates
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class OutputOptions(BaseModel):
    """Raster output geometry and encoding. Unset geometry takes the configured defaults."""
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    pixel_scale: Optional[float] = Field(
        None,
        gt=0,
        validation_alias=AliasChoices("pixel_scale", "pixelScale", "scale"),
        description="Device pixel ratio",
    )
    image_format: Literal["png", "jpeg"] = Field(
        "png", validation_alias=AliasChoices("image_format", "imageFormat", "format")
    )
    quality: Optional[int] = Field(None, ge=1, le=100, description="JPEG quality")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_quality(self) -> "OutputOptions":
        """Quality only applies to lossy output."""
        if self.quality is not None and self.image_format != "jpeg":
            raise ValueError("quality is only supported for jpeg output")
        return self

    def with_defaults(self, settings: Settings) -> "OutputOptions":
        """Copy with unset width, height and pixel_scale taken from settings."""
        return self.model_copy(
            update={
                "width": self.width if self.width is not None else settings.default_width,
                "height": self.height if self.height is not None else settings.default_height,
                "pixel_scale": (
                    self.pixel_scale
                    if self.pixel_scale is not None
                    else settings.default_pixel_scale
                ),
            }
        )

    @property
    def content_type(self) -> str:
        return f"image/{self.image_format}"


class RenderRequest(BaseModel):
    """One render job: a template with content, or raw markup."""
    template_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("template_id", "templateId")
    )
    content: Optional[ContentFields] = None
    raw_markup_override: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("raw_markup_override", "rawMarkupOverride", "htmlOverride"),
    )
    output_options: OutputOptions = Field(
        default_factory=OutputOptions,
        validation_alias=AliasChoices("output_options", "outputOptions", "options"),
    )

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_mode(self) -> "RenderRequest":
        """Exactly one of template+content or raw override must be present."""
        if self.raw_markup_override is not None:
            if self.template_id is not None or self.content is not None:
                raise ValueError(
                    "raw_markup_override cannot be combined with template_id or content"
                )
            if not self.raw_markup_override.strip():
                raise ValueError("raw_markup_override cannot be empty")
            return self

        if self.template_id is None:
            if self.content is not None:
                raise ValueError("template_id is required when content is supplied")
            raise ValueError("either template_id with content or raw_markup_override is required")

        if self.content is None:
            self.content = ContentFields()
        return self


class LegacyRenderOptions(BaseModel):
    """Flat options block of the original /generate-image body."""
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    scale: Optional[float] = Field(None, gt=0)


class LegacyImageRequest(BaseModel):
    """Original /generate-image request shape."""
    headline: str = ""
    summary: str = ""
    tag: Optional[str] = None
    date: Optional[str] = None
    backgroundImageUrl: Optional[str] = None
    htmlOverride: Optional[str] = None
    options: Optional[LegacyRenderOptions] = None

    def to_render_payload(self) -> Dict[str, Any]:
        """Translate into a RenderRequest payload, picking the template the old server would."""
        output: Dict[str, Any] = {}
        if self.options:
            if self.options.width:
                output["width"] = self.options.width
            if self.options.height:
                output["height"] = self.options.height
            if self.options.scale:
                output["pixel_scale"] = self.options.scale

        if self.htmlOverride:
            return {"raw_markup_override": self.htmlOverride, "output_options": output}

        content = {
            "headline": self.headline,
            "summary": self.summary,
            "tag": self.tag,
            "date": self.date,
            "background_image_url": self.backgroundImageUrl,
        }
        return {
            "template_id": "image" if self.backgroundImageUrl else "text",
            "content": content,
            "output_options": output,
        }


# Markup Models
class BuiltMarkup(BaseModel):
    """Resolved markup document ready for the render pipeline."""
    markup: str = Field(..., description="Self-contained HTML document")
    requires_network: bool = Field(
        ..., description="Whether the document references remote resources"
    )
    template_id: Optional[str] = Field(None, description="Template used, if any")


# Engine Models
class EngineStatus(BaseModel):
    """Read-only snapshot of the session manager's engine handle."""
    state: EngineState
    launched_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    idle_seconds: Optional[float] = None
    active_borrows: int = Field(0, ge=0)
    launch_count: int = Field(0, ge=0)


# Rendering Models
class StageOutcome(BaseModel):
    """Result of one bounded readiness wait."""
    stage: str
    status: StageStatus
    detail: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.OK


class RenderResult(BaseModel):
    """Successful render. ``degraded`` marks a capture taken after a soft stage failed."""
    image_bytes: bytes = Field(..., description="Encoded raster image", exclude=True)
    content_type: str = Field(..., description="MIME type of image_bytes")
    width: int = Field(..., description="Viewport width in CSS pixels")
    height: int = Field(..., description="Viewport height in CSS pixels")
    pixel_scale: float = Field(..., description="Device pixel ratio used for capture")
    duration_ms: int = Field(..., ge=0, description="Total job time")
    degraded: bool = Field(False, description="A soft readiness stage did not complete")
    stages: List[StageOutcome] = Field(default_factory=list)

    @property
    def file_size(self) -> int:
        return len(self.image_bytes)


# Error Models
class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")


# Health Check Models
class MemoryUsage(BaseModel):
    """Resident memory of the service and its engine processes."""
    process_rss_mb: float
    engine_rss_mb: float
    total_rss_mb: float
    system_percent: float


class HealthStatus(BaseModel):
    """Health check status."""
    status: Literal["healthy", "degraded"] = Field(..., description="Overall status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    version: str = Field(..., description="Application version")
    uptime_seconds: float = Field(..., ge=0)
    engine: EngineStatus
    memory: MemoryUsage
    active_jobs: int = Field(0, ge=0)
