"""
Test Suite
==========

Test suite matching the html_to_image/ package structure.

Test Categories:
- unit: Unit tests for individual components
- integration: Pipeline tests wiring the components together
"""
