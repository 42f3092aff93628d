"""
Test Data Package
================

Sample figures for export tests.
"""
