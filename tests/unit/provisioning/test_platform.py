"""Unit tests for platform layout resolution."""

from pathlib import Path

import pytest

from knowlang_bridge.provisioning import UNKNOWN_PLATFORM, PlatformResolver


class TestPlatformResolver:
    @pytest.mark.parametrize(
        ("platform", "tag", "executable", "tool"),
        [
            ("win32", "windows", "main.exe", "tar.exe"),
            ("cygwin", "windows", "main.exe", "tar.exe"),
            ("darwin", "macos", "main", "tar"),
            ("linux", "linux", "main", "tar"),
        ],
    )
    def test_known_platforms(self, platform: str, tag: str, executable: str, tool: str) -> None:
        layout = PlatformResolver(platform).resolve()

        assert layout.platform_tag == tag
        assert layout.executable_name == executable
        assert layout.extract_tool == tool
        assert layout.archive_name == f"knowlang-unity-{tag}-latest.tar.gz"
        assert layout.is_supported

    def test_versioned_platform_name(self) -> None:
        assert PlatformResolver("linux2").resolve().platform_tag == "linux"

    def test_unknown_platform(self) -> None:
        layout = PlatformResolver("sunos5").resolve()

        assert layout.platform_tag == UNKNOWN_PLATFORM
        assert not layout.is_supported

    def test_defaults_to_host(self) -> None:
        import sys

        assert PlatformResolver().platform == sys.platform

    def test_paths_under_install_root(self, tmp_path: Path) -> None:
        layout = PlatformResolver("win32").resolve()

        assert layout.binary_dir(tmp_path) == tmp_path / "windows"
        assert layout.executable_path(tmp_path) == tmp_path / "windows" / "main.exe"
