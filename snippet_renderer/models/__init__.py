"""
Data Models
===========

Pydantic data models for style attributes, surface geometry and render results.
"""
