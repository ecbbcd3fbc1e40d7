"""
Data Models
===========

Pydantic models for requests, results, and engine introspection.
"""
