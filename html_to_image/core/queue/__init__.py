"""
Batch Processing
================

Concurrency-bounded batch scheduling and result reporting.
"""
