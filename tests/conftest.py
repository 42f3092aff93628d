"""
Test Configuration
==================

Pytest configuration with fixtures shared by unit and integration tests:
test settings, a fake WebDriver server and sample figures.
"""

import sys
from pathlib import Path
from typing import Generator

import pytest
from pydantic_settings import SettingsConfigDict

import plotly_static.config.settings as settings_module
from plotly_static.config.settings import Settings
from plotly_static.core.webdriver.browsers import ChromeProfile
from plotly_static.core.webdriver.process import DriverProcessManager
from plotly_static.core.webdriver.session import SessionConnector

from tests.data.sample_figures import SCATTER_FIGURE
from tests.utils.fake_webdriver import FakeWebDriver
from tests.utils.helpers import make_fake_driver


class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    log_level: str = "DEBUG"
    startup_timeout: float = 20.0
    stop_timeout: float = 5.0
    wait_for_page_ready: bool = False

    model_config = SettingsConfigDict(env_file=".env.test", env_prefix="PLOTLY_STATIC_TEST_")


@pytest.fixture(scope="session")
def test_settings() -> TestSettings:
    """Test settings fixture."""
    return TestSettings()


@pytest.fixture(autouse=True)
def override_settings(test_settings: TestSettings, monkeypatch: pytest.MonkeyPatch):
    """Route get_settings() to the test settings."""
    monkeypatch.setattr(settings_module, "settings", test_settings)
    yield test_settings


@pytest.fixture
def fake_webdriver() -> Generator[FakeWebDriver, None, None]:
    """A fake WebDriver serving on a free port."""
    server = FakeWebDriver()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def chrome_profile() -> ChromeProfile:
    return ChromeProfile()


@pytest.fixture
def process_manager(chrome_profile: ChromeProfile) -> DriverProcessManager:
    return DriverProcessManager(chrome_profile, base_url="http://127.0.0.1", poll_interval=0.05)


@pytest.fixture
def connector() -> SessionConnector:
    return SessionConnector()


@pytest.fixture
def fake_driver_binary(tmp_path: Path) -> Path:
    """An executable that behaves like chromedriver, backed by the fake server."""
    if sys.platform == "win32":
        pytest.skip("fake driver executable relies on a shebang line")
    return make_fake_driver(tmp_path)


@pytest.fixture
def scatter_figure() -> dict:
    return SCATTER_FIGURE
