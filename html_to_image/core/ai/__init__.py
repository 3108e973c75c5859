"""
AI Generation
=============

Prompt construction and response parsing for AI-generated HTML documents.
"""
