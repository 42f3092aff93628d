"""
WebDriver Session Connector
===========================

HTTP/JSON client for the W3C WebDriver endpoints used by the exporter:
new session, navigation, script execution and session deletion.
"""

import asyncio
import json
from typing import Optional, Dict, Any, List

import aiohttp

from plotly_static.config.logging import get_logger
from plotly_static.config.settings import get_settings
from plotly_static.core.errors import SessionError
from plotly_static.models.schemas import BrowserCapabilities

logger = get_logger(__name__)


class WebDriverSession:
    """A remote browser context addressed by its session id."""

    def __init__(self, session_id: str, base_url: str, capabilities: Optional[Dict[str, Any]] = None):
        self.session_id = session_id
        self.base_url = base_url.rstrip("/")
        self.capabilities = capabilities or {}
        self.closed = False

    @property
    def url(self) -> str:
        return f"{self.base_url}/session/{self.session_id}"

    def __repr__(self) -> str:
        return f"WebDriverSession(id={self.session_id!r}, base_url={self.base_url!r}, closed={self.closed})"


class SessionConnector:
    """Opens, drives and closes WebDriver sessions."""

    def __init__(self, script_timeout_ms: Optional[int] = None, connect_timeout: float = 30.0):
        self.settings = get_settings()
        self.script_timeout_ms = script_timeout_ms or self.settings.script_timeout_ms
        self.connect_timeout = connect_timeout
        self.logger = logger.bind(component="webdriver_session")
        self._http: Optional[aiohttp.ClientSession] = None

    async def _get_http(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._http is None or self._http.closed:
            # Export scripts may run for a long time; only connecting is bounded
            timeout = aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)
            self._http = aiohttp.ClientSession(timeout=timeout)
        return self._http

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http and not self._http.closed:
            await self._http.close()
        self._http = None

    async def _request(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send one WebDriver command and return its ``value``.

        Raises:
            SessionError: On transport failure, a non-JSON body or a WebDriver error response
        """
        http = await self._get_http()
        try:
            async with http.request(method, url, json=payload) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise SessionError(f"WebDriver request {method} {url} failed: {e}") from e

        try:
            body = json.loads(text) if text else {}
        except ValueError as e:
            raise SessionError(
                f"WebDriver returned invalid JSON for {method} {url} (HTTP {status})", status=status
            ) from e

        if not isinstance(body, dict):
            raise SessionError(f"Unexpected WebDriver response for {method} {url}", status=status)

        value = body.get("value")
        legacy_status = body.get("status")
        if status >= 400 or (isinstance(value, dict) and "error" in value) or legacy_status:
            error = value.get("error") if isinstance(value, dict) else None
            message = value.get("message") if isinstance(value, dict) else value
            raise SessionError(
                f"WebDriver error on {method} {url} (HTTP {status}): {error or legacy_status}: {message}",
                status=status,
                error=error,
            )
        return value if "value" in body else body

    async def connect(self, base_url: str, capabilities: BrowserCapabilities) -> WebDriverSession:
        """
        Perform the new-session handshake.

        Not retried here; the caller decides whether a failed handshake is worth another try.
        """
        base_url = base_url.rstrip("/")
        payload = capabilities.to_payload()
        self.logger.debug("Creating WebDriver session", base_url=base_url, capabilities=payload)

        value = await self._request("POST", f"{base_url}/session", payload)

        session_id = None
        negotiated: Dict[str, Any] = {}
        if isinstance(value, dict):
            session_id = value.get("sessionId")
            negotiated = value.get("capabilities") or {}
        if not session_id:
            raise SessionError(f"WebDriver at {base_url} did not return a session id")

        session = WebDriverSession(session_id, base_url, negotiated)
        self.logger.info(
            "WebDriver session created",
            session_id=session_id,
            browser=negotiated.get("browserName", capabilities.browser_name),
        )

        if self.script_timeout_ms:
            try:
                await self._request(
                    "POST", f"{session.url}/timeouts", {"script": self.script_timeout_ms}
                )
            except SessionError:
                # The caller never sees this session, so release it here
                await self.close(session)
                raise
        return session

    def _ensure_open(self, session: WebDriverSession) -> None:
        if session.closed:
            raise SessionError(f"WebDriver session {session.session_id} is closed")

    async def navigate(self, session: WebDriverSession, url: str) -> None:
        self._ensure_open(session)
        await self._request("POST", f"{session.url}/url", {"url": url})

    async def execute(self, session: WebDriverSession, script: str, args: Optional[List[Any]] = None) -> Any:
        """Run a synchronous script in the page and return its result."""
        self._ensure_open(session)
        return await self._request(
            "POST", f"{session.url}/execute/sync", {"script": script, "args": args or []}
        )

    async def execute_async(
        self, session: WebDriverSession, script: str, args: Optional[List[Any]] = None
    ) -> Any:
        """Run an asynchronous script; the page signals completion through the trailing callback argument."""
        self._ensure_open(session)
        return await self._request(
            "POST", f"{session.url}/execute/async", {"script": script, "args": args or []}
        )

    async def close(self, session: WebDriverSession) -> None:
        """Best-effort release of the remote session; failures are only logged."""
        if session.closed:
            return
        session.closed = True
        try:
            await self._request("DELETE", session.url)
            self.logger.info("WebDriver session closed", session_id=session.session_id)
        except SessionError as e:
            self.logger.warning(
                "Failed to close WebDriver session", session_id=session.session_id, error=str(e)
            )
