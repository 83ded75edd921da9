"""
Test Suite
==========

Test suite matching the snippet_renderer/ package structure.

Test Categories:
- unit: Unit tests for individual components, run against a fake rendering surface
"""
