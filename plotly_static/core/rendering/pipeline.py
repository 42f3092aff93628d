"""
Render Pipeline
===============

Loads the host document into a WebDriver session and runs the export scripts
inside the browser. The pipeline hands back the raw data URL; decoding it is
the decoder's job.
"""

from typing import Any, Optional
from pathlib import Path
from urllib.parse import quote
import asyncio

from plotly_static.config.logging import get_logger
from plotly_static.config.settings import get_settings
from plotly_static.core.errors import RenderError
from plotly_static.core.rendering.decoder import ERROR_PREFIX
from plotly_static.core.rendering.host_document import (
    CONTAINER_ID,
    TemplateRenderer,
    write_host_file,
)
from plotly_static.core.webdriver.browsers import BrowserProfile
from plotly_static.core.webdriver.session import SessionConnector, WebDriverSession
from plotly_static.models.schemas import ExportRequest, ImageFormat

logger = get_logger(__name__)


class RenderPipeline:
    """Drives the in-browser export for one exporter."""

    def __init__(
        self,
        connector: SessionConnector,
        profile: BrowserProfile,
        offline_mode: Optional[bool] = None,
        pdf_export_timeout: Optional[int] = None,
        templates: Optional[TemplateRenderer] = None,
        wait_for_page_ready: Optional[bool] = None,
        ready_timeout: float = 10.0,
        runtime_timeout: float = 15.0,
    ):
        self.settings = get_settings()
        self.connector = connector
        self.profile = profile
        self.offline_mode = (
            self.settings.offline_mode if offline_mode is None else offline_mode
        )
        self.pdf_export_timeout = (
            self.settings.pdf_export_timeout if pdf_export_timeout is None else pdf_export_timeout
        )
        self.templates = templates or TemplateRenderer()
        self.wait_for_page_ready = (
            self.settings.effective_wait_for_page_ready
            if wait_for_page_ready is None
            else wait_for_page_ready
        )
        self.ready_timeout = ready_timeout
        self.runtime_timeout = runtime_timeout
        self.logger = logger.bind(component="render_pipeline", offline=self.offline_mode)
        self._host_file: Optional[Path] = None

    def host_url(self, host_document: str) -> str:
        """
        URL to load ``host_document`` from.

        Offline documents embed the JavaScript bundles and exceed data URI
        size limits, so they go through a local file.
        """
        if self.offline_mode:
            if self._host_file is None or not self._host_file.exists():
                self._host_file = write_host_file(host_document)
            return self._host_file.as_uri()
        return f"data:text/html,{quote(host_document, safe='')}"

    async def navigate(self, session: WebDriverSession, host_document: Optional[str] = None) -> None:
        """Load the host document into ``session``."""
        if host_document is None:
            host_document = self.templates.host_document(self.offline_mode)
        url = self.host_url(host_document)
        self.logger.debug("Loading host document", session_id=session.session_id, url=url[:80])
        await self.connector.navigate(session, url)

        if self.wait_for_page_ready:
            await self._wait_for(
                session,
                "return document.readyState === 'complete';",
                self.ready_timeout,
                0.05,
                "document.readyState === 'complete'",
            )
            await self._wait_for(
                session,
                f"return !!document.getElementById('{CONTAINER_ID}');",
                self.ready_timeout,
                0.05,
                f"#{CONTAINER_ID} to appear in DOM",
            )
            if not self.offline_mode:
                await self._wait_for(
                    session,
                    "return !!window.Plotly;",
                    self.runtime_timeout,
                    0.1,
                    "Plotly library to load",
                )

    async def _wait_for(
        self,
        session: WebDriverSession,
        script: str,
        timeout: float,
        interval: float,
        description: str,
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if await self.connector.execute(session, script) is True:
                return
            if loop.time() > deadline:
                raise RenderError(f"Timeout waiting for {description}")
            await asyncio.sleep(interval)

    async def run_export(self, session: WebDriverSession, request: ExportRequest) -> str:
        """
        Execute the export script for ``request`` and return the raw payload.

        PDF is rendered in two stages: the script first renders SVG, then
        captures it into a PDF once the image has settled.

        Raises:
            RenderError: If the script reports an error or returns a non-string
            SessionError: If the WebDriver transport fails
        """
        if request.format is ImageFormat.PDF:
            script = self.templates.pdf_export_script(
                self.pdf_export_timeout, self.profile.foreign_object_rendering
            )
            args = request.script_arguments(ImageFormat.SVG)
        else:
            script = self.templates.image_export_script()
            args = request.script_arguments()

        self.logger.debug(
            "Running export script",
            session_id=session.session_id,
            format=str(request.format),
            width=request.width,
            height=request.height,
            scale=request.scale,
        )
        result: Any = await self.connector.execute_async(session, script, args)

        if not isinstance(result, str):
            raise RenderError("Failed to execute Plotly.toImage in browser session")
        if result.startswith(ERROR_PREFIX):
            message = result[len(ERROR_PREFIX):]
            self.logger.error("Export script failed in browser", error=message)
            raise RenderError(f"JavaScript error during export: {message}")
        return result

    async def render(self, session: WebDriverSession, request: ExportRequest) -> str:
        """Navigate to a fresh host page and export ``request``."""
        await self.navigate(session)
        return await self.run_export(session, request)

    def cleanup(self) -> None:
        """Remove the temporary host document, if one was written."""
        if self._host_file is not None:
            try:
                self._host_file.unlink(missing_ok=True)
            except OSError as e:
                self.logger.warning(
                    "Failed to remove host document", path=str(self._host_file), error=str(e)
                )
            self._host_file = None
