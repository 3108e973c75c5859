"""
Configuration Resolution
========================

Merge default, file, invocation and inline configuration layers into one
validated effective configuration.
"""
