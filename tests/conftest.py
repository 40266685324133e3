"""Shared test fixtures for knowlang-bridge tests."""

import os
import socket
import stat
import sys
from collections.abc import Callable
from pathlib import Path
from typing import cast

import anyio
import pytest
from rich.console import Console


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every per-user directory at the test's temporary directory.

    Also clears KNOWLANG_* variables so the developer's environment never
    leaks into configuration tests.
    """
    home = tmp_path / "home"
    monkeypatch.setattr("knowlang_bridge.utils._paths.get_data_dir", lambda: home / "data")
    monkeypatch.setattr("knowlang_bridge.utils._paths.get_log_dir", lambda: home / "logs")
    monkeypatch.setattr(
        "knowlang_bridge.config._discovery.get_user_config_path",
        lambda: home / "config" / "config.toml",
    )
    for key in list(os.environ):
        if key.startswith("KNOWLANG_"):
            monkeypatch.delenv(key)
    return home


@pytest.fixture
def console() -> Console:
    return Console(
        width=70,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )


def find_open_port(host: str = "127.0.0.1") -> int:
    """Find an available port by binding to port 0."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, 0))
        addr = cast("tuple[str, int]", sock.getsockname())
        return addr[1]


ScriptFactory = Callable[[Path, str], Path]


def write_python_executable(path: Path, body: str) -> Path:
    """Write an executable Python script that runs with the test interpreter."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def python_executable() -> ScriptFactory:
    """Return a factory writing executable Python scripts."""
    if sys.platform == "win32":
        pytest.skip("shebang scripts are not executable on Windows")
    return write_python_executable


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll a predicate until it holds, failing the test after ``timeout``."""
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.01)
