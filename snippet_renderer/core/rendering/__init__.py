"""
Rendering Module
===============

Components:
- surface: Rendering surface boundary and the completion channel
- playwright_surface: Headless Chromium surface
- image: PNG decoding and optimization
"""
