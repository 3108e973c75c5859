"""
Core Business Logic
==================

Core modules for converting HTML documents into images.

Modules:
- resolution: layered configuration resolution and validation
- rendering: renderer sessions, asset resolution, capture and templates
- ingest: archive extraction and HTML discovery
- queue: batch scheduling and reporting
- ai: AI-assisted document generation
- pipeline: shared resources and end-to-end orchestration
"""
