"""
HTML to Image Converter
=======================

Batch conversion of self-contained HTML documents into PNG, JPEG and WebP
images through headless browser rendering.

This package provides:
- Layered configuration resolution with inline per-document directives
- Local asset serving so relative references render correctly
- Archive ingestion (ZIP and RAR) feeding HTML discovery
- Concurrency-bounded batch rendering with Playwright
- Starter template and AI-assisted document generation
"""

__version__ = "1.0.0"
__author__ = "HTML to Image Converter Team"
