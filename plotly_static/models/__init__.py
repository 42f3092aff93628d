"""
Data Models
===========

Pydantic data models for export requests and browser negotiation.

Models:
- schemas: image formats, export requests, capabilities and process handles
"""
