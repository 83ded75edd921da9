"""
Templates Module
================

Template registration and placeholder substitution.

Components:
- store: Template registry keyed by identifier
- engine: Template validation, attribute merging, and substitution
- transformers: Pluggable snippet/template pre-processing strategies
"""
