"""
API Dependencies
================

Accessors for the per-application render components created in the lifespan.
"""

from fastapi import HTTPException, Request

from snapcard.core.rendering.service import RenderService


def get_render_service(request: Request) -> RenderService:
    """Render service owned by the running application."""
    service = getattr(request.app.state, "render_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Render service is not started")
    return service
