"""
Test Suite
==========

Test suite matching the snapcard/ package structure.

Test Categories:
- unit: Markup builder, session manager, readiness waits and render pipeline
- integration: HTTP contracts of the render service against a fake engine
"""
