"""
Core Business Logic
==================

Markup building, engine session management and the render pipeline.

Components:
- errors: Classified render failures
- rendering: Markup builder, engine handle, session manager, render pipeline
"""
