"""
Export Errors
=============

Error taxonomy for the export pipeline. Every error carries the stage that
produced it so callers can tell a driver that never started apart from a
script that threw inside the browser or a payload that came back malformed.
"""

from enum import Enum
from typing import Optional


class ExportStage(str, Enum):
    """Pipeline stage an error originated from."""

    DRIVER = "driver"
    SESSION = "session"
    RENDER = "render"
    PARSE = "parse"
    IO = "io"
    CONFIG = "config"


class ExportError(Exception):
    """Base class for all export failures."""

    stage: ExportStage = ExportStage.CONFIG

    def __init__(self, message: str, stage: Optional[ExportStage] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return self.message


class DriverUnavailable(ExportError):
    """The driver binary is missing or never became ready."""

    stage = ExportStage.DRIVER

    def __init__(self, message: str, port: Optional[int] = None):
        super().__init__(message)
        self.port = port


class SessionError(ExportError):
    """Transport or protocol failure establishing or using a WebDriver session."""

    stage = ExportStage.SESSION

    def __init__(self, message: str, status: Optional[int] = None, error: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.error = error


class RenderError(ExportError):
    """The in-browser export script reported an error."""

    stage = ExportStage.RENDER


class ParseError(ExportError):
    """The browser payload does not have the expected shape."""

    stage = ExportStage.PARSE


class IoError(ExportError):
    """Writing the exported image failed."""

    stage = ExportStage.IO

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
