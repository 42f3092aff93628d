"""
plotly-static
=============

Static image export for Plotly figures through a headless browser driven over
the WebDriver protocol.

This package provides:
- Driver process supervision (chromedriver, geckodriver)
- WebDriver session negotiation and reuse
- In-browser rendering to PNG, JPEG, WEBP, SVG and PDF
- Synchronous and asyncio exporters
"""

__version__ = "0.1.0"

from plotly_static.core.errors import (
    DriverUnavailable,
    ExportError,
    ExportStage,
    IoError,
    ParseError,
    RenderError,
    SessionError,
)
from plotly_static.exporter import (
    AsyncStaticExporter,
    StaticExporter,
    StaticExporterBuilder,
    export_figure,
)
from plotly_static.models.schemas import BrowserCapabilities, ExportRequest, ImageFormat

__all__ = [
    "AsyncStaticExporter",
    "BrowserCapabilities",
    "DriverUnavailable",
    "ExportError",
    "ExportRequest",
    "ExportStage",
    "ImageFormat",
    "IoError",
    "ParseError",
    "RenderError",
    "SessionError",
    "StaticExporter",
    "StaticExporterBuilder",
    "export_figure",
]
