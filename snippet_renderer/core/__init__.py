"""
Core Business Logic
==================

Modules:
- templates: Template registry and placeholder substitution
- cache: Render result cache
- queue: Render jobs and the sequential scheduler
- rendering: Rendering surface boundary and the Playwright surface
- renderer: Caller-facing renderer
"""
