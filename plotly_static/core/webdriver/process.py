"""
Driver Process Manager
======================

Detects, spawns and supervises the browser-driver executable (chromedriver or
geckodriver) bound to a TCP port. A handle remembers whether this process
spawned the driver; only an owning handle ever terminates it, so a driver
started by someone else keeps running when we are done with it.
"""

from typing import Optional, List, IO, Union
from enum import Enum
from pathlib import Path
import asyncio
import shutil
import subprocess
import sys
import threading

import aiohttp
import psutil

from plotly_static.config.logging import get_logger
from plotly_static.config.settings import get_settings
from plotly_static.core.errors import DriverUnavailable
from plotly_static.core.webdriver.browsers import BrowserProfile

logger = get_logger(__name__)

WEBDRIVER_PATH_ENV = "WEBDRIVER_PATH"
CREATE_NO_WINDOW = 0x08000000


class ProcessState(str, Enum):
    """Lifecycle of a driver process handle."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class ProcessHandle:
    """A driver endpoint on a port, and the OS process behind it if we spawned it."""

    def __init__(
        self,
        port: int,
        process: Optional[subprocess.Popen] = None,
        owned: bool = False,
        driver_path: Optional[Path] = None,
    ):
        self.port = port
        self.process = process
        self.owned = owned
        self.driver_path = driver_path
        self.state = ProcessState.NOT_STARTED
        self._lock = threading.Lock()

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def is_external(self) -> bool:
        return not self.owned

    def __repr__(self) -> str:
        return (
            f"ProcessHandle(port={self.port}, pid={self.pid}, "
            f"owned={self.owned}, state={self.state.value})"
        )


class DriverProcessManager:
    """Spawns, probes and stops driver processes for one browser profile."""

    def __init__(
        self,
        profile: BrowserProfile,
        base_url: Optional[str] = None,
        driver_path: Optional[Union[str, Path]] = None,
        install_path: Optional[Union[str, Path]] = None,
        status_timeout: Optional[float] = None,
        startup_timeout: Optional[float] = None,
        stop_timeout: Optional[float] = None,
        poll_interval: float = 0.1,
    ):
        self.settings = get_settings()
        self.profile = profile
        self.base_url = (base_url or self.settings.webdriver_url).rstrip("/")
        self.driver_path = Path(driver_path) if driver_path else self.settings.webdriver_path
        self.install_path = (
            Path(install_path) if install_path else self.settings.webdriver_install_path
        )
        self.status_timeout = status_timeout or self.settings.status_timeout
        self.startup_timeout = startup_timeout or self.settings.effective_startup_timeout
        self.stop_timeout = stop_timeout or self.settings.stop_timeout
        self.poll_interval = poll_interval
        self.logger = logger.bind(component="driver_process", driver=profile.driver_name)

    def status_url(self, port: int) -> str:
        return f"{self.base_url}:{port}/status"

    async def is_running(self, port: int) -> bool:
        """
        Probe ``/status`` on the port.

        A driver is considered live when it answers HTTP 200 with a body that
        mentions ``ready``. Any transport failure counts as not running.
        """
        timeout = aiohttp.ClientTimeout(total=self.status_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.status_url(port)) as response:
                    if response.status != 200:
                        return False
                    text = await response.text()
                    return "ready" in text
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self.logger.debug("WebDriver status probe failed", port=port, error=str(e))
            return False

    async def connect_or_spawn(self, port: int) -> ProcessHandle:
        """Connect to a live driver on ``port``, spawning one if nothing answers."""
        handle = await self._try_connect(port)
        if handle is not None:
            return handle
        self.logger.debug("No WebDriver running, spawning a new one", port=port)
        return await self.spawn(port)

    async def connect_only(self, port: int) -> ProcessHandle:
        """Connect to a live driver on ``port`` without a spawn fallback."""
        handle = await self._try_connect(port)
        if handle is None:
            raise DriverUnavailable(
                f"No WebDriver answering at {self.status_url(port)} and spawning is disabled",
                port=port,
            )
        return handle

    async def _try_connect(self, port: int) -> Optional[ProcessHandle]:
        if not await self.is_running(port):
            return None
        self.logger.info("WebDriver already running, connecting to existing instance", port=port)
        handle = ProcessHandle(port, owned=False)
        handle.state = ProcessState.RUNNING
        return handle

    async def spawn(self, port: int) -> ProcessHandle:
        """
        Spawn the driver executable on ``port`` and wait until it is ready.

        Raises:
            DriverUnavailable: If the binary is missing, fails to start, exits
                early or does not become ready within the startup timeout
        """
        driver_path = self.resolve_driver_path()
        command = [str(driver_path), *self.profile.driver_args(port)]
        self.logger.info("Spawning WebDriver", port=port, command=command)

        try:
            process = self._popen(command)
        except OSError as e:
            self.logger.error("Failed to spawn WebDriver", port=port, command=command, error=str(e))
            raise DriverUnavailable(
                f"Failed to spawn '{self.profile.driver_name}': {e}", port=port
            ) from e

        handle = ProcessHandle(port, process=process, owned=True, driver_path=driver_path)
        self._monitor_output(process, port)

        try:
            await self._wait_for_ready(handle)
        except DriverUnavailable:
            self.logger.error(
                "WebDriver failed to start properly", diagnostics=await self.diagnostics(handle)
            )
            self._terminate(handle)
            raise

        handle.state = ProcessState.RUNNING
        self.logger.info("WebDriver started", port=port, pid=process.pid)
        return handle

    def _popen(self, command: List[str]) -> subprocess.Popen:
        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = CREATE_NO_WINDOW
        return subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            **kwargs,
        )

    def _monitor_output(self, process: subprocess.Popen, port: int) -> None:
        """Drain driver stdout/stderr on daemon threads so the pipes never fill up."""
        for name, stream in (("stdout", process.stdout), ("stderr", process.stderr)):
            if stream is None:
                continue
            thread = threading.Thread(
                target=self._drain,
                args=(stream, name, port),
                name=f"webdriver-{port}-{name}",
                daemon=True,
            )
            thread.start()

    def _drain(self, stream: IO[str], name: str, port: int) -> None:
        with stream:
            for line in stream:
                self.logger.debug("WebDriver output", port=port, stream=name, line=line.rstrip())
        self.logger.debug("WebDriver output closed", port=port, stream=name)

    async def _wait_for_ready(self, handle: ProcessHandle) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.startup_timeout

        while loop.time() < deadline:
            if await self.is_running(handle.port):
                self.logger.info(
                    "WebDriver is ready",
                    port=handle.port,
                    elapsed=round(loop.time() - started, 3),
                )
                return

            if handle.process is not None and handle.process.poll() is not None:
                raise DriverUnavailable(
                    f"WebDriver process exited with code {handle.process.returncode} "
                    f"before becoming ready on port {handle.port}",
                    port=handle.port,
                )

            await asyncio.sleep(self.poll_interval)

        raise DriverUnavailable(
            f"WebDriver failed to become ready on port {handle.port} "
            f"within {self.startup_timeout}s",
            port=handle.port,
        )

    def stop(self, handle: ProcessHandle) -> None:
        """
        Stop the driver behind ``handle`` if this process owns it.

        External handles and already stopped handles are left alone, so
        calling this more than once is safe.
        """
        with handle._lock:
            if handle.state is ProcessState.STOPPED:
                return
            if not handle.owned:
                self.logger.warning(
                    "Not stopping external WebDriver as it was not spawned by us",
                    port=handle.port,
                )
                return
            self._terminate(handle)

    def _terminate(self, handle: ProcessHandle) -> None:
        process = handle.process
        if process is None:
            handle.state = ProcessState.STOPPED
            return

        self.logger.info("Stopping WebDriver", port=handle.port, pid=process.pid)
        children = self._children(process.pid)

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                self.logger.warning(
                    "WebDriver did not exit after terminate, killing",
                    port=handle.port,
                    pid=process.pid,
                )
                process.kill()
                process.wait()

        # Browsers launched by the driver may outlive it
        if children:
            gone, alive = psutil.wait_procs(children, timeout=self.stop_timeout)
            for child in alive:
                try:
                    child.kill()
                except psutil.NoSuchProcess:
                    pass

        handle.state = ProcessState.STOPPED
        self.logger.info("WebDriver stopped", port=handle.port, returncode=process.returncode)

    def _children(self, pid: int) -> List[psutil.Process]:
        try:
            return psutil.Process(pid).children(recursive=True)
        except psutil.Error:
            return []

    def resolve_driver_path(self) -> Path:
        """
        Locate the driver executable.

        Lookup order: the configured path (``WEBDRIVER_PATH``), the install
        directory (``WEBDRIVER_INSTALL_PATH`` or ``~/.local/bin``), then ``PATH``.

        Raises:
            DriverUnavailable: If no executable can be found
        """
        suffix = ".exe" if sys.platform == "win32" else ""

        if self.driver_path is not None:
            path = Path(self.driver_path)
            if suffix and not path.exists() and path.suffix.lower() != suffix:
                path = path.with_name(path.name + suffix)
            if not path.is_file():
                raise DriverUnavailable(
                    f"WebDriver executable not found at provided path: '{path}'"
                )
            return path

        install_dir = self.install_path or Path.home() / ".local" / "bin"
        candidate = install_dir / f"{self.profile.driver_name}{suffix}"
        if candidate.is_file():
            return candidate

        found = shutil.which(self.profile.driver_name)
        if found:
            return Path(found)

        self.logger.warning(
            "WebDriver binary not found",
            driver=self.profile.driver_name,
            install_dir=str(install_dir),
        )
        raise DriverUnavailable(
            f"WebDriver binary '{self.profile.driver_name}' not available. "
            f"Set {WEBDRIVER_PATH_ENV} to the driver executable or install it in {install_dir}"
        )

    async def diagnostics(self, handle: ProcessHandle) -> str:
        """Human readable report about the driver behind ``handle``."""
        lines = [
            "WebDriver Diagnostics:",
            f"  Driver: {self.profile.driver_name}",
            f"  Port: {handle.port}",
            f"  Driver Path: {handle.driver_path}",
            f"  Is External: {handle.is_external}",
            f"  State: {handle.state.value}",
        ]

        process = handle.process
        if process is None:
            lines.append("  Process ID: None (no child process)")
        else:
            lines.append(f"  Process ID: {process.pid}")
            returncode = process.poll()
            if returncode is None:
                lines.append("  Process Status: Running")
            else:
                lines.append(f"  Process Status: Exited with {returncode}")

        lines.append(f"  WebDriver Responding: {await self.is_running(handle.port)}")
        lines.append(f"  Status URL: {self.status_url(handle.port)}")
        lines.append(f"  Platform: {sys.platform}")
        return "\n".join(lines)
