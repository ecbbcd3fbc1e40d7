"""
API Routes
==========

Routers for rendering and health endpoints.
"""
