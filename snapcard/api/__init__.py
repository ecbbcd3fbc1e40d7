"""
FastAPI REST Endpoints
======================

REST API endpoints for HTTP access to the render service.

Endpoints:
- POST /api/v1/render: Render a template or raw markup to an image
- POST /generate-image: Original flat request shape
- GET /health: Engine state, memory usage and uptime
"""
