"""
Render Routes
=============

FastAPI routes for image rendering. Successful jobs return the raw image
bytes; failures are turned into ErrorResponse JSON by the application's
exception handlers.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from snapcard.api.dependencies import get_render_service
from snapcard.core.rendering.service import RenderService
from snapcard.models.schemas import ErrorResponse, LegacyImageRequest, RenderRequest, RenderResult

router = APIRouter(tags=["Rendering"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid or oversized request"},
    404: {"model": ErrorResponse, "description": "Template not found"},
    422: {"model": ErrorResponse, "description": "Template substitution failed"},
    503: {"model": ErrorResponse, "description": "Engine unavailable or at capacity"},
    504: {"model": ErrorResponse, "description": "Render timed out"},
}


def image_response(result: RenderResult) -> Response:
    """Wrap a render result in an image response."""
    return Response(
        content=result.image_bytes,
        media_type=result.content_type,
        headers={
            "X-Render-Duration-Ms": str(result.duration_ms),
            "X-Render-Degraded": "true" if result.degraded else "false",
        },
    )


@router.post(
    "/api/v1/render",
    response_class=Response,
    responses={200: {"content": {"image/png": {}, "image/jpeg": {}}}, **ERROR_RESPONSES},
)
async def render_image(
    request: RenderRequest, service: RenderService = Depends(get_render_service)
) -> Response:
    """Render a template with content, or raw markup, to an image."""
    result = await service.render(request)
    return image_response(result)


@router.post(
    "/generate-image",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}, **ERROR_RESPONSES},
)
async def generate_image(
    request: LegacyImageRequest, service: RenderService = Depends(get_render_service)
) -> Response:
    """Original flat request shape: ``htmlOverride``, ``backgroundImageUrl`` or a text card."""
    result = await service.render(request.to_render_payload())
    return image_response(result)
