"""
Render Service
==============

Job entry point: validate a request, build its markup, render it.
One attempt per job; retry policy belongs to the caller.
"""

from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from snapcard.config.logging import get_logger
from snapcard.config.settings import Settings, get_settings
from snapcard.core.errors import ValidationError
from snapcard.core.rendering.markup_builder import MarkupBuilder
from snapcard.core.rendering.render_pipeline import RenderPipeline
from snapcard.models.schemas import OutputOptions, RenderRequest, RenderResult

logger = get_logger(__name__)


class RenderService:
    """Runs render jobs end to end."""

    def __init__(
        self,
        pipeline: RenderPipeline,
        builder: Optional[MarkupBuilder] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.pipeline = pipeline
        self.builder = builder or MarkupBuilder(self.settings)
        self.logger: Any = logger.bind(component="render_service")

    @property
    def session_manager(self):
        return self.pipeline.session_manager

    def parse_request(self, payload: Union[RenderRequest, Dict[str, Any]]) -> RenderRequest:
        """Validate a raw payload into a RenderRequest."""
        if isinstance(payload, RenderRequest):
            request = payload
        else:
            try:
                request = RenderRequest.model_validate(payload)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid render request",
                    details={
                        "errors": e.errors(
                            include_url=False, include_context=False, include_input=False
                        )
                    },
                )

        options = request.output_options.with_defaults(self.settings)
        self.check_output_options(options)
        return request.model_copy(update={"output_options": options})

    def check_output_options(self, options: OutputOptions) -> None:
        """Enforce configured output ceilings."""
        problems = []
        if options.width > self.settings.max_width:
            problems.append(f"width {options.width} exceeds {self.settings.max_width}")
        if options.height > self.settings.max_height:
            problems.append(f"height {options.height} exceeds {self.settings.max_height}")
        if options.pixel_scale > self.settings.max_pixel_scale:
            problems.append(
                f"pixel_scale {options.pixel_scale} exceeds {self.settings.max_pixel_scale}"
            )
        if problems:
            raise ValidationError("Invalid output options", details={"errors": problems})

    async def render(self, payload: Union[RenderRequest, Dict[str, Any]]) -> RenderResult:
        """
        Run one render job.

        Args:
            payload: RenderRequest or its JSON-compatible dict form

        Returns:
            RenderResult with the encoded image

        Raises:
            RenderError: Classified failure (see snapcard.core.errors)
        """
        request = self.parse_request(payload)
        built = self.builder.build(request)
        return await self.pipeline.render(
            built.markup, request.output_options, requires_network=built.requires_network
        )
