"""
Rendering Module
===============

Browser automation and image capture.

Components:
- renderer: renderer interface and Playwright implementation
- asset_resolver: relative asset rewriting and local asset server
- render_capture: per-document load, readiness and capture
- template_generator: starter HTML documents
"""
