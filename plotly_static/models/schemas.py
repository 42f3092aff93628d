"""
Pydantic Models and Schemas
===========================

Core data models for export requests and browser capability negotiation.
Request and capability models are frozen: they are built once and never mutated.
"""

from typing import Optional, List, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Enums
class ImageFormat(str, Enum):
    """Supported static image formats; the value is the canonical file extension."""

    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    SVG = "svg"
    PDF = "pdf"

    def __str__(self) -> str:
        return self.value

    @property
    def is_text(self) -> bool:
        """SVG comes back as percent-encoded text, everything else as base64."""
        return self is ImageFormat.SVG

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | ImageFormat") -> "ImageFormat":
        """Look up a format by name or extension, case-insensitively."""
        if isinstance(value, ImageFormat):
            return value
        key = value.strip().lower().lstrip(".")
        if key == "jpg":
            key = "jpeg"
        try:
            return cls(key)
        except ValueError:
            allowed = ", ".join(f.value for f in cls)
            raise ValueError(f"Unsupported image format '{value}'; expected one of: {allowed}")


_MIME_TYPES = {
    ImageFormat.PNG: "image/png",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.SVG: "image/svg+xml",
    ImageFormat.PDF: "application/pdf",
}


class ExportRequest(BaseModel):
    """A single export call: what to render and how big."""

    model_config = ConfigDict(frozen=True)

    format: ImageFormat = Field(..., description="Target image format")
    width: int = Field(..., gt=0, description="Width in pixels")
    height: int = Field(..., gt=0, description="Height in pixels")
    scale: float = Field(default=1.0, gt=0, description="Scale factor")
    plot: Any = Field(..., description="Plot description, passed to the browser untouched")

    @field_validator("format", mode="before")
    @classmethod
    def parse_format(cls, v: Any) -> ImageFormat:
        if isinstance(v, str):
            return ImageFormat.parse(v)
        return v

    def script_arguments(self, format: Optional[ImageFormat] = None) -> List[Any]:
        """Positional arguments for the in-browser export scripts."""
        return [
            self.plot,
            str(format or self.format),
            self.width,
            self.height,
            self.scale,
        ]


class BrowserCapabilities(BaseModel):
    """Capabilities sent with the WebDriver new-session request."""

    model_config = ConfigDict(frozen=True)

    browser_name: str = Field(..., description="W3C browserName")
    options_key: str = Field(..., description="Vendor options key, e.g. goog:chromeOptions")
    args: List[str] = Field(default_factory=list, description="Browser command-line arguments")
    binary: Optional[str] = Field(default=None, description="Browser binary override")
    prefs: Optional[Dict[str, Any]] = Field(default=None, description="Browser preferences")

    def browser_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"args": list(self.args)}
        if self.binary:
            options["binary"] = self.binary
        if self.prefs:
            options["prefs"] = dict(self.prefs)
        return options

    def to_payload(self) -> Dict[str, Any]:
        """Render the body of a ``POST /session`` request."""
        caps = {
            "browserName": self.browser_name,
            self.options_key: self.browser_options(),
        }
        return {
            "capabilities": {"alwaysMatch": caps, "firstMatch": [{}]},
            "desiredCapabilities": dict(caps),
        }
