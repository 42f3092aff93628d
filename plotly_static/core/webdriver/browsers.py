"""
Browser Profiles
================

Runtime-selected browser variants. A profile knows the W3C browser name, the
vendor options key, the driver executable it pairs with, its default
command-line arguments and any preferences it injects into the capabilities.
"""

from typing import Optional, List, Dict, Any, Sequence
from abc import ABC, abstractmethod
import sys

from plotly_static.models.schemas import BrowserCapabilities


class BrowserProfile(ABC):
    """Abstract base class for browser profiles."""

    name: str = ""
    options_key: str = ""
    driver_name: str = ""

    @abstractmethod
    def default_args(self) -> List[str]:
        """Default browser command-line arguments."""
        pass

    def preferences(self) -> Optional[Dict[str, Any]]:
        """Browser preferences injected into the capabilities."""
        return None

    def driver_args(self, port: int) -> List[str]:
        """Arguments for launching the driver executable on ``port``."""
        return [f"--port={port}"]

    @property
    def foreign_object_rendering(self) -> bool:
        """Whether html2canvas may use foreignObject rendering for PDF export."""
        return False

    def capabilities(
        self,
        args: Optional[Sequence[str]] = None,
        binary: Optional[str] = None,
    ) -> BrowserCapabilities:
        return BrowserCapabilities(
            browser_name=self.name,
            options_key=self.options_key,
            args=list(args) if args is not None else self.default_args(),
            binary=binary,
            prefs=self.preferences(),
        )


class ChromeProfile(BrowserProfile):
    """Chrome driven through chromedriver."""

    name = "chrome"
    options_key = "goog:chromeOptions"
    driver_name = "chromedriver"

    def default_args(self) -> List[str]:
        if sys.platform == "win32":
            return [
                "--headless=new",
                "--no-sandbox",
                "--disable-dev-shm-usage",
                "--disable-breakpad",
                "--no-first-run",
                "--no-default-browser-check",
                "--disable-background-networking",
                "--disable-sync",
                "--disable-translate",
                "--disable-background-timer-throttling",
                "--disable-renderer-backgrounding",
                "--disable-backgrounding-occluded-windows",
                "--disable-ipc-flooding-protection",
                "--disable-extensions",
                "--hide-scrollbars",
                "--mute-audio",
                "--use-angle=swiftshader",
                "--disable-software-rasterizer",
            ]
        return [
            "--headless",
            "--no-sandbox",
            "--disable-gpu-sandbox",
            "--disable-dev-shm-usage",
            "--disable-extensions",
            "--disable-background-networking",
            "--disable-sync",
            "--disable-translate",
            "--disable-background-timer-throttling",
            "--disable-renderer-backgrounding",
            "--disable-features=VizDisplayCompositor",
            "--memory-pressure-off",
            "--enable-unsafe-swiftshader",
            "--use-mock-keychain",
            "--password-store=basic",
            "--disable-web-security",
            "--disable-breakpad",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-backgrounding-occluded-windows",
            "--disable-ipc-flooding-protection",
            "--enable-logging",
            "--v=1",
        ]

    def driver_args(self, port: int) -> List[str]:
        return [f"--port={port}", "--verbose"]

    @property
    def foreign_object_rendering(self) -> bool:
        return True


class FirefoxProfile(BrowserProfile):
    """Firefox driven through geckodriver."""

    name = "firefox"
    options_key = "moz:firefoxOptions"
    driver_name = "geckodriver"

    def default_args(self) -> List[str]:
        # Firefox takes single-dash flags
        return ["-headless", "--no-remote"]

    def preferences(self) -> Optional[Dict[str, Any]]:
        # Software rendering with WebGL enabled, for headless CI machines
        return {
            "layers.acceleration.disabled": True,
            "gfx.webrender.all": False,
            "gfx.webrender.software": True,
            "webgl.disabled": False,
            "webgl.force-enabled": True,
            "webgl.enable-webgl2": True,
            "webgl.software-rendering": True,
            "webgl.software-rendering.force": True,
            "gfx.canvas.azure.accelerated": False,
            "gfx.canvas.azure.accelerated-layers": False,
            "gfx.content.azure.backends": "cairo",
            "gfx.2d.force-enabled": True,
            "gfx.2d.force-software": True,
        }


class BrowserProfileFactory:
    """Factory for browser profiles."""

    _profiles = {
        "chrome": ChromeProfile,
        "firefox": FirefoxProfile,
    }

    @classmethod
    def create_profile(cls, name: str = "chrome") -> BrowserProfile:
        """
        Create a browser profile by name.

        Raises:
            ValueError: If the browser is not supported
        """
        key = name.lower()
        if key not in cls._profiles:
            raise ValueError(
                f"Unsupported browser '{name}'; expected one of: {sorted(cls._profiles)}"
            )
        return cls._profiles[key]()

    @classmethod
    def available(cls) -> List[str]:
        return sorted(cls._profiles)
