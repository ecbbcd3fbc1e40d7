"""
Rendering Module
===============

Markup building and raster capture with a managed browser engine.

Components:
- markup_builder: Built-in cards, on-disk templates and raw markup
- engine: Playwright-backed engine handle, surfaces and launcher
- session_manager: Single shared engine with launch coalescing and idle eviction
- readiness: Bounded font and asset readiness waits
- render_pipeline: Load, readiness gates and capture for one job
- service: Request validation and job entry point
- templates: Built-in card markup
"""
