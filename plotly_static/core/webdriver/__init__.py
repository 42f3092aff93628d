"""
WebDriver Module
================

Driver process supervision and WebDriver session handling.

Components:
- browsers: runtime-selected browser profiles (Chrome, Firefox)
- process: spawning, probing and stopping the driver executable
- session: W3C WebDriver session handshake and commands over HTTP/JSON
"""
