"""
Static Exporter
===============

Public entry points: a builder that resolves the driver process, and the
exporters that own a WebDriver session and turn plots into images.

``StaticExporter`` is synchronous and runs everything on an event loop it
owns. ``AsyncStaticExporter`` runs on the caller's loop. Both create their
WebDriver session lazily on the first export and reuse it afterwards.
"""

from typing import Optional, List, Any, Union, Sequence, Coroutine, TypeVar
from pathlib import Path
import asyncio
import base64
import threading
import weakref

from pydantic import ValidationError

from plotly_static.config.logging import get_logger
from plotly_static.config.settings import Settings, get_settings
from plotly_static.core.errors import ExportError, IoError
from plotly_static.core.rendering import decoder
from plotly_static.core.rendering.pipeline import RenderPipeline
from plotly_static.core.rendering.host_document import TemplateRenderer
from plotly_static.core.webdriver.browsers import BrowserProfile, BrowserProfileFactory
from plotly_static.core.webdriver.process import DriverProcessManager, ProcessHandle
from plotly_static.core.webdriver.session import SessionConnector, WebDriverSession
from plotly_static.models.schemas import BrowserCapabilities, ExportRequest, ImageFormat

logger = get_logger(__name__)

T = TypeVar("T")
ExportResult = Union[bytes, str]
PathLike = Union[str, Path]

FINALIZER_TIMEOUT = 10.0


class _Teardown:
    """Last-resort teardown for exporters that were never closed."""

    def __init__(self, manager: DriverProcessManager, handle: ProcessHandle, pipeline: RenderPipeline):
        self.manager = manager
        self.handle = handle
        self.pipeline = pipeline
        self.session: Optional[WebDriverSession] = None

    def __call__(self) -> None:
        if self.session is not None:
            self._release_session(self.session)
            self.session = None
        try:
            self.manager.stop(self.handle)
        except Exception as e:
            logger.error("Failed to stop WebDriver during finalization", port=self.handle.port, error=str(e))
        self.pipeline.cleanup()

    def _release_session(self, session: WebDriverSession) -> None:
        # The owning loop may be gone or busy; delete from a private loop on a helper thread
        async def delete() -> None:
            connector = SessionConnector()
            try:
                await connector.close(session)
            finally:
                await connector.aclose()

        coro = delete()
        thread = threading.Thread(
            target=asyncio.run, args=(coro,), name="plotly-static-finalizer", daemon=True
        )
        try:
            thread.start()
        except RuntimeError as e:
            coro.close()
            logger.warning(
                "Failed to release WebDriver session during finalization",
                session_id=session.session_id,
                error=str(e),
            )
            return
        thread.join(FINALIZER_TIMEOUT)


def _finalize_sync(loop: asyncio.AbstractEventLoop, inner: "AsyncStaticExporter") -> None:
    """Close a garbage-collected ``StaticExporter`` on its own loop."""
    if loop.is_closed():
        return
    try:
        if not _in_async_context():
            loop.run_until_complete(inner.close())
            loop.run_until_complete(loop.shutdown_asyncgens())
    except Exception as e:
        logger.error("Failed to close exporter during finalization", error=str(e))
    finally:
        loop.close()


class AsyncStaticExporter:
    """Exports plots through one WebDriver session on the caller's event loop."""

    def __init__(
        self,
        manager: DriverProcessManager,
        handle: ProcessHandle,
        connector: SessionConnector,
        pipeline: RenderPipeline,
        capabilities: BrowserCapabilities,
        webdriver_url: str,
        strict_mime: bool = False,
    ):
        self.manager = manager
        self.handle = handle
        self.connector = connector
        self.pipeline = pipeline
        self.capabilities = capabilities
        self.webdriver_url = webdriver_url
        self.strict_mime = strict_mime
        self.logger = logger.bind(component="exporter", port=handle.port)
        self._session: Optional[WebDriverSession] = None
        self._lock = asyncio.Lock()
        self._closed = False
        self._teardown = _Teardown(manager, handle, pipeline)
        self._finalizer = weakref.finalize(self, self._teardown)

    @property
    def session(self) -> Optional[WebDriverSession]:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    async def _ensure_session(self) -> WebDriverSession:
        if self._session is None:
            self.logger.debug("Creating new WebDriver session", webdriver_url=self.webdriver_url)
            self._session = await self.connector.connect(self.webdriver_url, self.capabilities)
            self._teardown.session = self._session
        else:
            self.logger.debug("Reusing existing WebDriver session")
        return self._session

    async def export(self, request: ExportRequest) -> ExportResult:
        """
        Render ``request`` and return the image.

        Returns:
            UTF-8 text for SVG, decoded bytes for every other format

        Raises:
            DriverUnavailable, SessionError, RenderError, ParseError
        """
        self._check_open()
        async with self._lock:
            # close() may have run while this export waited for the lock
            self._check_open()
            session = await self._ensure_session()
            payload = await self.pipeline.render(session, request)
            result = decoder.decode(payload, request.format, strict=self.strict_mime)
        self.logger.info(
            "Plot exported",
            format=str(request.format),
            width=request.width,
            height=request.height,
            size=len(result),
        )
        return result

    async def write_fig(
        self,
        dst: PathLike,
        plot: Any,
        format: Union[ImageFormat, str],
        width: int,
        height: int,
        scale: float = 1.0,
    ) -> Path:
        """
        Export ``plot`` to ``dst`` with its extension set to the format's.

        Returns:
            The path that was written

        Raises:
            IoError: If the file cannot be written
        """
        request = make_request(plot, format, width, height, scale)
        result = await self.export(request)
        return write_result(dst, result, request.format)

    async def write_to_string(
        self,
        plot: Any,
        format: Union[ImageFormat, str],
        width: int,
        height: int,
        scale: float = 1.0,
    ) -> str:
        """Export ``plot`` as text: SVG markup, or base64 for binary formats."""
        request = make_request(plot, format, width, height, scale)
        return as_text(await self.export(request))

    async def reset_session(self) -> None:
        """Close the current session; the next export opens a new one."""
        self._check_open()
        async with self._lock:
            self._check_open()
            await self._release_session()

    async def _release_session(self) -> None:
        if self._session is not None:
            await self.connector.close(self._session)
            self._session = None
            self._teardown.session = None

    def _check_open(self) -> None:
        if self._closed:
            raise ExportError("Exporter is closed")

    async def diagnostics(self) -> str:
        return await self.manager.diagnostics(self.handle)

    async def close(self) -> None:
        """
        Close the session and stop the driver if this exporter spawned it.

        Waits for an in-flight export to finish; exports still queued behind
        it fail with :class:`ExportError`. Failures are logged, never raised.
        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        async with self._lock:
            await self._release_session()

        try:
            self.manager.stop(self.handle)
        except Exception as e:
            self.logger.error("Failed to stop WebDriver", error=str(e))

        self.pipeline.cleanup()
        await self.connector.aclose()
        self._finalizer.detach()
        self.logger.debug("Exporter closed")

    async def __aenter__(self) -> "AsyncStaticExporter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class StaticExporter:
    """Synchronous exporter; each call blocks until the export completes."""

    def __init__(self, loop: asyncio.AbstractEventLoop, inner: AsyncStaticExporter):
        self._loop = loop
        self._inner = inner
        self._call_lock = threading.Lock()
        self._finalizer = weakref.finalize(self, _finalize_sync, loop, inner)

    @property
    def inner(self) -> AsyncStaticExporter:
        return self._inner

    @property
    def closed(self) -> bool:
        return self._inner.closed

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        if _in_async_context():
            coro.close()
            raise ExportError(
                "StaticExporter sync methods cannot be used inside an async context. "
                "Use StaticExporterBuilder.build_async() and the AsyncStaticExporter methods."
            )
        with self._call_lock:
            if self._loop.is_closed():
                coro.close()
                raise ExportError("Exporter is closed")
            return self._loop.run_until_complete(coro)

    def export(self, request: ExportRequest) -> ExportResult:
        return self._run(self._inner.export(request))

    def write_fig(
        self,
        dst: PathLike,
        plot: Any,
        format: Union[ImageFormat, str],
        width: int,
        height: int,
        scale: float = 1.0,
    ) -> Path:
        return self._run(self._inner.write_fig(dst, plot, format, width, height, scale))

    def write_to_string(
        self,
        plot: Any,
        format: Union[ImageFormat, str],
        width: int,
        height: int,
        scale: float = 1.0,
    ) -> str:
        return self._run(self._inner.write_to_string(plot, format, width, height, scale))

    def reset_session(self) -> None:
        self._run(self._inner.reset_session())

    def diagnostics(self) -> str:
        return self._run(self._inner.diagnostics())

    def close(self) -> None:
        """Tear down the session, the owned driver and the event loop. Idempotent."""
        with self._call_lock:
            if self._loop.is_closed():
                return
            try:
                self._loop.run_until_complete(self._inner.close())
                self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            finally:
                self._loop.close()
                self._finalizer.detach()

    def __enter__(self) -> "StaticExporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StaticExporterBuilder:
    """Fluent configuration for exporters; defaults come from :class:`Settings`."""

    def __init__(self, settings: Optional[Settings] = None):
        s = settings or get_settings()
        self._webdriver_port = s.webdriver_port
        self._webdriver_url = s.webdriver_url
        self._spawn_webdriver = s.spawn_webdriver
        self._offline_mode = s.offline_mode
        self._pdf_export_timeout = s.pdf_export_timeout
        self._browser = s.browser
        self._browser_args: Optional[List[str]] = s.browser_args
        self._browser_path: Optional[str] = str(s.browser_path) if s.browser_path else None
        self._webdriver_path: Optional[Path] = s.webdriver_path
        self._strict_mime = s.strict_mime
        self._assets_path: Optional[Path] = s.assets_path
        self._wait_for_page_ready: Optional[bool] = s.wait_for_page_ready

    def webdriver_port(self, port: int) -> "StaticExporterBuilder":
        self._webdriver_port = port
        return self

    def webdriver_url(self, url: str) -> "StaticExporterBuilder":
        self._webdriver_url = url.rstrip("/")
        return self

    def spawn_webdriver(self, yes: bool) -> "StaticExporterBuilder":
        self._spawn_webdriver = yes
        return self

    def offline_mode(self, yes: bool) -> "StaticExporterBuilder":
        self._offline_mode = yes
        return self

    def pdf_export_timeout(self, timeout_ms: int) -> "StaticExporterBuilder":
        self._pdf_export_timeout = timeout_ms
        return self

    def browser(self, name: str) -> "StaticExporterBuilder":
        self._browser = name
        return self

    def webdriver_browser_caps(self, args: Sequence[str]) -> "StaticExporterBuilder":
        self._browser_args = list(args)
        return self

    def browser_path(self, path: Optional[PathLike]) -> "StaticExporterBuilder":
        self._browser_path = str(path) if path else None
        return self

    def webdriver_path(self, path: Optional[PathLike]) -> "StaticExporterBuilder":
        self._webdriver_path = Path(path) if path else None
        return self

    def strict_mime(self, yes: bool) -> "StaticExporterBuilder":
        self._strict_mime = yes
        return self

    def assets_path(self, path: Optional[PathLike]) -> "StaticExporterBuilder":
        self._assets_path = Path(path) if path else None
        return self

    def wait_for_page_ready(self, yes: Optional[bool]) -> "StaticExporterBuilder":
        self._wait_for_page_ready = yes
        return self

    @property
    def endpoint(self) -> str:
        return f"{self._webdriver_url}:{self._webdriver_port}"

    def profile(self) -> BrowserProfile:
        try:
            return BrowserProfileFactory.create_profile(self._browser)
        except ValueError as e:
            raise ExportError(str(e)) from e

    def capabilities(self) -> BrowserCapabilities:
        return self.profile().capabilities(args=self._browser_args, binary=self._browser_path)

    async def build_async(self) -> AsyncStaticExporter:
        """Resolve the driver process and return an exporter bound to the running loop."""
        profile = self.profile()
        manager = DriverProcessManager(
            profile, base_url=self._webdriver_url, driver_path=self._webdriver_path
        )
        if self._spawn_webdriver:
            handle = await manager.connect_or_spawn(self._webdriver_port)
        else:
            handle = await manager.connect_only(self._webdriver_port)

        connector = SessionConnector()
        pipeline = RenderPipeline(
            connector,
            profile,
            offline_mode=self._offline_mode,
            pdf_export_timeout=self._pdf_export_timeout,
            templates=TemplateRenderer(self._assets_path),
            wait_for_page_ready=self._wait_for_page_ready,
        )
        logger.debug(
            "Exporter built",
            endpoint=self.endpoint,
            browser=profile.name,
            owned=handle.owned,
            offline=self._offline_mode,
        )
        return AsyncStaticExporter(
            manager,
            handle,
            connector,
            pipeline,
            profile.capabilities(args=self._browser_args, binary=self._browser_path),
            self.endpoint,
            strict_mime=self._strict_mime,
        )

    def build(self) -> StaticExporter:
        """Resolve the driver process and return a synchronous exporter with its own loop."""
        if _in_async_context():
            raise ExportError(
                "StaticExporterBuilder.build() cannot be used inside an async context. "
                "Use StaticExporterBuilder.build_async() instead."
            )
        loop = asyncio.new_event_loop()
        try:
            inner = loop.run_until_complete(self.build_async())
        except BaseException:
            loop.close()
            raise
        return StaticExporter(loop, inner)


def _in_async_context() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def make_request(
    plot: Any, format: Union[ImageFormat, str], width: int, height: int, scale: float
) -> ExportRequest:
    try:
        return ExportRequest(format=format, width=width, height=height, scale=scale, plot=plot)
    except ValidationError as e:
        raise ExportError(f"Invalid export request: {e}") from e


def as_text(result: ExportResult) -> str:
    if isinstance(result, str):
        return result
    return base64.b64encode(result).decode("ascii")


def write_result(dst: PathLike, result: ExportResult, format: ImageFormat) -> Path:
    """Write an export result to ``dst`` with the format's extension."""
    data = result.encode("utf-8") if isinstance(result, str) else result
    try:
        path = Path(dst).with_suffix(f".{format.extension}")
    except ValueError as e:
        raise IoError(f"Invalid output path '{dst}': {e}", path=str(dst)) from e
    try:
        path.write_bytes(data)
    except OSError as e:
        raise IoError(f"Failed to write {format} image to {path}: {e}", path=str(path)) from e
    logger.info("Image written", path=str(path), size=len(data))
    return path


def export_figure(
    plot: Any,
    format: Union[ImageFormat, str] = ImageFormat.PNG,
    width: int = 800,
    height: int = 600,
    scale: float = 1.0,
    dst: Optional[PathLike] = None,
    builder: Optional[StaticExporterBuilder] = None,
) -> Union[ExportResult, Path]:
    """One-shot export: build an exporter, export once, tear everything down."""
    with (builder or StaticExporterBuilder()).build() as exporter:
        if dst is not None:
            return exporter.write_fig(dst, plot, format, width, height, scale)
        request = make_request(plot, format, width, height, scale)
        return exporter.export(request)
