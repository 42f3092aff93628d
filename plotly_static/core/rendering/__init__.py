"""
Rendering Module
===============

Browser-side rendering of plots and decoding of the returned data URLs.

Components:
- host_document: host document and export script templates
- pipeline: loads the host document and runs the export scripts
- decoder: turns browser payloads into bytes or text
"""
