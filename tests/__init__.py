"""
Test Suite
==========

Test suite matching the plotly_static/ package structure.

Test Categories:
- unit: Unit tests for individual components, run against a fake WebDriver
- integration: Spawned driver processes and concurrent exporters
"""
