"""
Render Errors
=============

Error taxonomy for render jobs. Every failure that leaves the render service is
one of these classes; the API layer maps them onto structured error responses.
"""

from typing import Any, Dict, Optional


class RenderError(Exception):
    """Base class for classified render job failures."""

    error_code = "RENDER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(RenderError):
    """Malformed or oversized request. Never retried by the core."""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class TemplateNotFound(RenderError):
    """Template identifier did not resolve to a known template."""

    error_code = "TEMPLATE_NOT_FOUND"
    status_code = 404


class TemplateInvalid(RenderError):
    """Template resolved but substitution failed."""

    error_code = "TEMPLATE_INVALID"
    status_code = 422


class CapacityExceeded(RenderError):
    """Too many jobs in flight."""

    error_code = "CAPACITY_EXCEEDED"
    status_code = 503


class EngineLaunchError(RenderError):
    """The browser engine process could not be started."""

    error_code = "ENGINE_LAUNCH_FAILED"
    status_code = 503


class LoadTimeout(RenderError):
    """Markup did not reach the required readiness in time."""

    error_code = "LOAD_TIMEOUT"
    status_code = 504


class CaptureError(RenderError):
    """The raster capture step failed."""

    error_code = "CAPTURE_FAILED"
    status_code = 500


class InternalError(RenderError):
    """Unclassified failure."""

    error_code = "INTERNAL_ERROR"
    status_code = 500
