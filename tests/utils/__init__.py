"""
Test Utilities
==============

Shared helpers, assertions and fakes for the test suite.
"""
