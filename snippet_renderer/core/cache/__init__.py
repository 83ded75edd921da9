"""
Cache Module
============

In-memory result cache keyed by job identifier.
"""
