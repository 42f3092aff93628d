"""
Exporter Settings
=================

Exporter defaults and environment configuration using Pydantic Settings.
Every value can be overridden through ``PLOTLY_STATIC_*`` environment variables;
the driver and browser locations also honour the plain ``WEBDRIVER_PATH``,
``BROWSER_PATH`` and ``WEBDRIVER_INSTALL_PATH`` variables.
"""

from typing import Optional, List, Union
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
import sys
from pathlib import Path


DEFAULT_WEBDRIVER_PORT = 4444
DEFAULT_WEBDRIVER_URL = "http://127.0.0.1"
DEFAULT_PDF_EXPORT_TIMEOUT = 150


class Settings(BaseSettings):
    """Exporter settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="plotly-static", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    log_level: str = Field(default="INFO", description="Logging level")

    # WebDriver Configuration
    webdriver_port: int = Field(
        default=DEFAULT_WEBDRIVER_PORT, gt=0, lt=65536, description="WebDriver TCP port"
    )
    webdriver_url: str = Field(default=DEFAULT_WEBDRIVER_URL, description="WebDriver base URL")
    spawn_webdriver: bool = Field(
        default=True, description="Spawn a driver process when none answers on the port"
    )
    webdriver_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("PLOTLY_STATIC_WEBDRIVER_PATH", "WEBDRIVER_PATH"),
        description="Full path to the driver executable",
    )
    webdriver_install_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices(
            "PLOTLY_STATIC_WEBDRIVER_INSTALL_PATH", "WEBDRIVER_INSTALL_PATH"
        ),
        description="Directory searched for installed driver executables",
    )
    status_timeout: float = Field(
        default=5.0, gt=0, description="Liveness probe timeout in seconds"
    )
    startup_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds to wait for a spawned driver to become ready"
    )
    stop_timeout: float = Field(
        default=5.0, gt=0, description="Grace period in seconds before a driver is killed"
    )

    # Browser Configuration
    browser: str = Field(default="chrome", description="Browser profile: chrome or firefox")
    browser_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("PLOTLY_STATIC_BROWSER_PATH", "BROWSER_PATH"),
        description="Browser binary override passed in the capabilities",
    )
    browser_args: Optional[List[str]] = Field(
        default=None, description="Browser command-line arguments (profile defaults if unset)"
    )
    script_timeout_ms: Optional[int] = Field(
        default=None, gt=0, description="WebDriver script timeout in milliseconds"
    )

    # Rendering Configuration
    offline_mode: bool = Field(
        default=False, description="Embed the JavaScript bundles instead of loading them from CDN"
    )
    assets_path: Optional[Path] = Field(
        default=None, description="Directory holding the offline JavaScript bundles"
    )
    pdf_export_timeout: int = Field(
        default=DEFAULT_PDF_EXPORT_TIMEOUT,
        ge=0,
        description="Milliseconds to wait after the SVG image loads before capturing the PDF",
    )
    wait_for_page_ready: Optional[bool] = Field(
        default=None, description="Poll the host page for readiness after navigation"
    )
    strict_mime: bool = Field(
        default=False, description="Fail exports whose payload MIME type differs from the request"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("browser")
    @classmethod
    def validate_browser(cls, v: str) -> str:
        """Validate browser profile name."""
        allowed = {"chrome", "firefox"}
        if v.lower() not in allowed:
            raise ValueError(f"Browser must be one of: {allowed}")
        return v.lower()

    @field_validator("browser_args", mode="before")
    @classmethod
    def parse_browser_args(cls, v: Union[str, List[str], None]) -> Optional[List[str]]:
        """Parse browser arguments from a JSON list or a comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [arg.strip() for arg in v.split(",") if arg.strip()]
        return v

    @field_validator("webdriver_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def effective_startup_timeout(self) -> float:
        """Driver startup bound; Windows drivers are slower to come up."""
        if self.startup_timeout is not None:
            return self.startup_timeout
        return 60.0 if sys.platform == "win32" else 30.0

    @property
    def effective_wait_for_page_ready(self) -> bool:
        if self.wait_for_page_ready is not None:
            return self.wait_for_page_ready
        return sys.platform == "win32"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="PLOTLY_STATIC_",
        populate_by_name=True,
        extra="ignore",
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
