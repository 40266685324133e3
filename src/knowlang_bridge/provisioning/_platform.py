"""Host platform resolution for service binaries.

Each supported operating system maps to a fixed layout: the name of the
service executable, the release archive that carries it, the tag used for
directories and archive names, and the archive tool used to unpack it.
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Final

UNKNOWN_PLATFORM: Final = "unknown"

ARCHIVE_NAME_TEMPLATE: Final = "knowlang-unity-{platform}-latest.tar.gz"


@dataclass(frozen=True, slots=True)
class PlatformLayout:
    """File layout of the service for one host platform.

    Attributes:
        platform_tag: Short platform name (windows, macos, linux or unknown).
        executable_name: File name of the service executable.
        archive_name: File name of the release archive for this platform.
        extract_tool: Name of the archive tool looked up on PATH.
    """

    platform_tag: str
    executable_name: str
    archive_name: str
    extract_tool: str

    @property
    def is_supported(self) -> bool:
        """Whether binaries are published for this platform."""
        return self.platform_tag != UNKNOWN_PLATFORM

    def binary_dir(self, install_root: Path) -> Path:
        """Return the directory holding this platform's binaries."""
        return install_root / self.platform_tag

    def executable_path(self, install_root: Path) -> Path:
        """Return the full path of the service executable."""
        return self.binary_dir(install_root) / self.executable_name


def _layout(platform_tag: str, executable_name: str, extract_tool: str) -> PlatformLayout:
    return PlatformLayout(
        platform_tag=platform_tag,
        executable_name=executable_name,
        archive_name=ARCHIVE_NAME_TEMPLATE.format(platform=platform_tag),
        extract_tool=extract_tool,
    )


class PlatformResolver:
    """Select the platform layout for a ``sys.platform`` value.

    The layout is chosen once at construction; callers that need a
    different host pass ``platform`` explicitly.

    Example:
        >>> PlatformResolver("linux").resolve().archive_name
        'knowlang-unity-linux-latest.tar.gz'
    """

    _LAYOUTS: ClassVar[dict[str, PlatformLayout]] = {
        "win32": _layout("windows", "main.exe", "tar.exe"),
        "cygwin": _layout("windows", "main.exe", "tar.exe"),
        "darwin": _layout("macos", "main", "tar"),
        "linux": _layout("linux", "main", "tar"),
    }

    _UNKNOWN: ClassVar[PlatformLayout] = _layout(UNKNOWN_PLATFORM, "main", "tar")

    def __init__(self, platform: str | None = None) -> None:
        self._platform: str = platform if platform is not None else sys.platform
        self._resolved: PlatformLayout = self._select(self._platform)

    @classmethod
    def _select(cls, platform: str) -> PlatformLayout:
        if platform in cls._LAYOUTS:
            return cls._LAYOUTS[platform]
        # Handle versioned names such as "linux2" or "freebsd14"
        for prefix, layout in cls._LAYOUTS.items():
            if platform.startswith(prefix):
                return layout
        return cls._UNKNOWN

    @property
    def platform(self) -> str:
        """The raw platform string the layout was selected from."""
        return self._platform

    def resolve(self) -> PlatformLayout:
        """Return the layout for the host platform."""
        return self._resolved
