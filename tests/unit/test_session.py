"""
Unit Tests for WebDriver Session Connector
==========================================

Session handshake, command execution and best-effort session teardown against
the fake WebDriver server.
"""

import pytest

from plotly_static.core.errors import ExportStage, SessionError
from plotly_static.core.webdriver.browsers import ChromeProfile, FirefoxProfile
from plotly_static.core.webdriver.session import SessionConnector, WebDriverSession

from tests.utils.helpers import find_free_port


@pytest.fixture
def chrome_caps():
    return ChromeProfile().capabilities()


class TestConnect:
    """Test the new-session handshake."""

    @pytest.mark.asyncio
    async def test_connect_creates_session(self, connector, fake_webdriver, chrome_caps):
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
        finally:
            await connector.aclose()

        assert session.session_id in fake_webdriver.sessions
        assert session.capabilities["browserName"] == "chrome"
        assert session.url == f"{fake_webdriver.base_url}/session/{session.session_id}"
        assert fake_webdriver.sessions[session.session_id]["goog:chromeOptions"]["args"]

    @pytest.mark.asyncio
    async def test_firefox_capabilities(self, connector, fake_webdriver):
        caps = FirefoxProfile().capabilities()
        try:
            session = await connector.connect(fake_webdriver.base_url + "/", caps)
        finally:
            await connector.aclose()

        sent = fake_webdriver.sessions[session.session_id]
        assert sent["browserName"] == "firefox"
        assert "prefs" in sent["moz:firefoxOptions"]

    @pytest.mark.asyncio
    async def test_rejected_capabilities(self, connector, fake_webdriver, chrome_caps):
        fake_webdriver.reject_sessions = True
        try:
            with pytest.raises(SessionError, match="session not created") as exc_info:
                await connector.connect(fake_webdriver.base_url, chrome_caps)
        finally:
            await connector.aclose()

        assert exc_info.value.status == 500
        assert exc_info.value.error == "session not created"
        assert exc_info.value.stage is ExportStage.SESSION

    @pytest.mark.asyncio
    async def test_transport_failure(self, connector, chrome_caps):
        try:
            with pytest.raises(SessionError):
                await connector.connect(f"http://127.0.0.1:{find_free_port()}", chrome_caps)
        finally:
            await connector.aclose()

    @pytest.mark.asyncio
    async def test_script_timeout_is_configured(self, fake_webdriver, chrome_caps):
        connector = SessionConnector(script_timeout_ms=60000)
        try:
            await connector.connect(fake_webdriver.base_url, chrome_caps)
        finally:
            await connector.aclose()

        assert fake_webdriver.timeouts == [{"script": 60000}]

    @pytest.mark.asyncio
    async def test_failed_script_timeout_releases_session(self, fake_webdriver, chrome_caps):
        fake_webdriver.fail_timeouts = True
        connector = SessionConnector(script_timeout_ms=60000)
        try:
            with pytest.raises(SessionError, match="timeouts rejected"):
                await connector.connect(fake_webdriver.base_url, chrome_caps)
        finally:
            await connector.aclose()

        assert fake_webdriver.created == 1
        assert fake_webdriver.deleted == 1
        assert fake_webdriver.live_sessions == 0

    @pytest.mark.asyncio
    async def test_no_script_timeout_by_default(self, connector, fake_webdriver, chrome_caps):
        try:
            await connector.connect(fake_webdriver.base_url, chrome_caps)
        finally:
            await connector.aclose()

        assert fake_webdriver.timeouts == []


class TestCommands:
    """Test navigation and script execution."""

    @pytest.mark.asyncio
    async def test_navigate_and_execute(self, connector, fake_webdriver, chrome_caps):
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
            await connector.navigate(session, "data:text/html,%3Cp%3E")
            result = await connector.execute(session, "return true;")
        finally:
            await connector.aclose()

        assert fake_webdriver.navigations == ["data:text/html,%3Cp%3E"]
        assert result is True

    @pytest.mark.asyncio
    async def test_execute_async_returns_value(self, connector, fake_webdriver, chrome_caps):
        fake_webdriver.responder = lambda script, args: f"echo:{args[0]}"
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
            result = await connector.execute_async(session, "arguments[1](arguments[0]);", ["hi"])
        finally:
            await connector.aclose()

        assert result == "echo:hi"
        assert fake_webdriver.scripts == [("arguments[1](arguments[0]);", ["hi"])]

    @pytest.mark.asyncio
    async def test_unknown_session(self, connector, fake_webdriver):
        session = WebDriverSession("does-not-exist", fake_webdriver.base_url)
        try:
            with pytest.raises(SessionError, match="invalid session id") as exc_info:
                await connector.execute(session, "return 1;")
        finally:
            await connector.aclose()

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_closed_session_rejected_locally(self, connector, fake_webdriver, chrome_caps):
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
            await connector.close(session)
            with pytest.raises(SessionError, match="closed"):
                await connector.navigate(session, "about:blank")
        finally:
            await connector.aclose()

        assert fake_webdriver.navigations == []


class TestClose:
    """Test session teardown."""

    @pytest.mark.asyncio
    async def test_close_deletes_session(self, connector, fake_webdriver, chrome_caps):
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
            await connector.close(session)
            await connector.close(session)
        finally:
            await connector.aclose()

        assert session.closed
        assert fake_webdriver.deleted == 1
        assert fake_webdriver.live_sessions == 0

    @pytest.mark.asyncio
    async def test_close_failure_is_not_raised(self, connector, fake_webdriver, chrome_caps):
        fake_webdriver.fail_delete = True
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
            await connector.close(session)
        finally:
            await connector.aclose()

        assert session.closed
        assert fake_webdriver.deleted == 0

    @pytest.mark.asyncio
    async def test_close_after_driver_is_gone(self, connector, fake_webdriver, chrome_caps):
        try:
            session = await connector.connect(fake_webdriver.base_url, chrome_caps)
            fake_webdriver.stop()
            await connector.close(session)
        finally:
            await connector.aclose()

        assert session.closed

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, connector):
        await connector.aclose()
        await connector.aclose()
