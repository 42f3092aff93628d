"""
Test Helpers
============

Helper functions for common testing operations.
"""

import socket
import stat
import sys
import time
from pathlib import Path
from typing import Callable

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
FAKE_DRIVER_SCRIPT = Path(__file__).resolve().parent / "fake_driver.py"


def find_free_port() -> int:
    """Ask the OS for a port nobody is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 10.0,
    interval: float = 0.1,
    error_message: str = "Condition not met within timeout",
) -> None:
    """Wait for a condition to become true."""
    start_time = time.time()

    while time.time() - start_time < timeout:
        if condition():
            return
        time.sleep(interval)

    raise TimeoutError(error_message)


def write_executable(path: Path, content: str) -> Path:
    """Write ``content`` to ``path`` and mark it executable."""
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_fake_driver(directory: Path, name: str = "chromedriver") -> Path:
    """Create an executable that serves the fake WebDriver on ``--port=N``."""
    return write_executable(
        directory / name,
        f"#!{sys.executable}\n"
        "import runpy, sys\n"
        f"sys.path.insert(0, {str(PROJECT_ROOT)!r})\n"
        f"runpy.run_path({str(FAKE_DRIVER_SCRIPT)!r}, run_name='__main__')\n",
    )


def make_crashing_driver(directory: Path, name: str = "chromedriver", code: int = 3) -> Path:
    """Create an executable that exits immediately without serving anything."""
    return write_executable(directory / name, f"#!/bin/sh\nexit {code}\n")
