"""
Core Export Logic
=================

Core modules for driving a browser through WebDriver and turning plots into images.

Modules:
- errors: export error taxonomy
- webdriver: driver process supervision, browser profiles and WebDriver sessions
- rendering: host document, in-browser export scripts and payload decoding
"""
