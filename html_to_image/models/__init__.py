"""
Data Models
===========

Pydantic data models for configuration layers and internal data structures.

Models:
- schemas: configuration groups and layers, conversion jobs, results and summaries
"""
