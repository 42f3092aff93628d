"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Exporter defaults and environment configuration
- logging: Structured logging configuration
"""
