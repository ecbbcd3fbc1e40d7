"""
SnapCard
========

Render headline cards and raw markup into fixed-size raster images by driving
a headless Chromium engine.

This package provides:
- Markup building from built-in and on-disk templates
- A session manager owning a single, lazily launched browser engine
- A render pipeline with a bounded readiness protocol
- FastAPI endpoints for job submission and health introspection
"""

__version__ = "1.0.0"
__author__ = "SnapCard Team"
