"""
Ingestion Module
================

Archive extraction and HTML document discovery.
"""
