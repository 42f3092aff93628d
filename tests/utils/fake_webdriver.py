"""
Fake WebDriver
==============

A small aiohttp server that speaks the subset of the W3C WebDriver protocol the
exporter uses. Export scripts are answered with synthetic data URLs, so the
whole pipeline can run without a browser.
"""

import asyncio
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from aiohttp import web

from plotly_static.core.rendering.decoder import encode
from plotly_static.models.schemas import ImageFormat

from tests.utils.helpers import find_free_port

SAMPLE_OUTPUTS = {
    ImageFormat.PNG: b"\x89PNG\r\n\x1a\nfake-png",
    ImageFormat.JPEG: b"\xff\xd8\xff\xe0fake-jpeg",
    ImageFormat.WEBP: b"RIFF\x00\x00\x00\x00WEBPfake",
    ImageFormat.PDF: b"%PDF-1.3\nfake-pdf\n%%EOF",
    ImageFormat.SVG: '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"></svg>',
}


def _error(status: int, error: str, message: str) -> web.Response:
    return web.json_response(
        {"value": {"error": error, "message": message, "stacktrace": ""}}, status=status
    )


class FakeWebDriver:
    """In-process WebDriver stand-in; runs on its own thread and event loop."""

    def __init__(self, browser_name: str = "chrome"):
        self.browser_name = browser_name
        self.port: Optional[int] = None
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.created = 0
        self.deleted = 0
        self.navigations: List[str] = []
        self.scripts: List[Tuple[str, List[Any]]] = []
        self.timeouts: List[Dict[str, Any]] = []
        self.payloads: Dict[ImageFormat, str] = {}
        self.responder: Optional[Callable[[str, List[Any]], Any]] = None
        self.reject_sessions = False
        self.fail_delete = False
        self.fail_timeouts = False
        self.sync_result: Any = True
        self.script_delay = 0.0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self.status)
        app.router.add_post("/session", self.new_session)
        app.router.add_delete("/session/{session_id}", self.delete_session)
        app.router.add_post("/session/{session_id}/url", self.navigate)
        app.router.add_post("/session/{session_id}/timeouts", self.set_timeouts)
        app.router.add_post("/session/{session_id}/execute/sync", self.execute_sync)
        app.router.add_post("/session/{session_id}/execute/async", self.execute_async)
        return app

    async def status(self, request: web.Request) -> web.Response:
        return web.json_response({"value": {"ready": True, "message": "ready"}})

    async def new_session(self, request: web.Request) -> web.Response:
        body = await request.json()
        if self.reject_sessions:
            return _error(500, "session not created", "capabilities rejected")
        caps = body.get("capabilities", {}).get("alwaysMatch", {})
        if "browserName" not in caps:
            return _error(400, "invalid argument", "browserName missing")
        session_id = uuid.uuid4().hex
        with self._lock:
            self.sessions[session_id] = caps
            self.created += 1
        return web.json_response(
            {
                "value": {
                    "sessionId": session_id,
                    "capabilities": {"browserName": caps["browserName"]},
                }
            }
        )

    def _session(self, request: web.Request) -> Optional[str]:
        session_id = request.match_info["session_id"]
        return session_id if session_id in self.sessions else None

    async def delete_session(self, request: web.Request) -> web.Response:
        if self.fail_delete:
            return _error(500, "unknown error", "delete failed")
        session_id = self._session(request)
        if session_id is None:
            return _error(404, "invalid session id", "no such session")
        with self._lock:
            del self.sessions[session_id]
            self.deleted += 1
        return web.json_response({"value": None})

    async def navigate(self, request: web.Request) -> web.Response:
        if self._session(request) is None:
            return _error(404, "invalid session id", "no such session")
        body = await request.json()
        self.navigations.append(body["url"])
        return web.json_response({"value": None})

    async def set_timeouts(self, request: web.Request) -> web.Response:
        if self._session(request) is None:
            return _error(404, "invalid session id", "no such session")
        if self.fail_timeouts:
            return _error(500, "unknown error", "timeouts rejected")
        self.timeouts.append(await request.json())
        return web.json_response({"value": None})

    async def execute_sync(self, request: web.Request) -> web.Response:
        if self._session(request) is None:
            return _error(404, "invalid session id", "no such session")
        return web.json_response({"value": self.sync_result})

    async def execute_async(self, request: web.Request) -> web.Response:
        if self._session(request) is None:
            return _error(404, "invalid session id", "no such session")
        body = await request.json()
        script, args = body["script"], body["args"]
        self.scripts.append((script, args))
        if self.script_delay:
            await asyncio.sleep(self.script_delay)
        if self.responder is not None:
            return web.json_response({"value": self.responder(script, args)})
        return web.json_response({"value": self.payload_for(script, args)})

    def payload_for(self, script: str, args: List[Any]) -> str:
        # PDF export asks the page for SVG first, then converts it in html2pdf
        format = ImageFormat.PDF if "html2pdf" in script else ImageFormat.parse(args[1])
        if format in self.payloads:
            return self.payloads[format]
        payload = encode(SAMPLE_OUTPUTS[format], format)
        if format is ImageFormat.PDF:
            payload = payload.replace(";base64,", ";filename=generated.pdf;base64,")
        return payload

    def start(self, port: Optional[int] = None) -> int:
        """Serve on ``port`` (a free one if omitted) from a background thread."""
        self.port = port or find_free_port()
        self._loop = asyncio.new_event_loop()
        started = threading.Event()
        errors: List[BaseException] = []

        def run() -> None:
            asyncio.set_event_loop(self._loop)
            runner = web.AppRunner(self.build_app())
            try:
                self._loop.run_until_complete(runner.setup())
                site = web.TCPSite(runner, "127.0.0.1", self.port)
                self._loop.run_until_complete(site.start())
            except BaseException as e:
                errors.append(e)
                started.set()
                return
            started.set()
            self._loop.run_forever()
            self._loop.run_until_complete(runner.cleanup())
            self._loop.close()

        self._thread = threading.Thread(target=run, name=f"fake-webdriver-{self.port}", daemon=True)
        self._thread.start()
        started.wait(10)
        if errors:
            raise RuntimeError(f"Fake WebDriver failed to start: {errors[0]}")
        return self.port

    def stop(self) -> None:
        if self._loop is not None and self._thread is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(10)
        self._thread = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    @property
    def live_sessions(self) -> int:
        return len(self.sessions)
