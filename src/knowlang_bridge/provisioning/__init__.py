"""Service binary provisioning.

Resolves the platform layout of the service and makes sure its
executable is extracted locally before the supervisor launches it.
"""

from ._platform import ARCHIVE_NAME_TEMPLATE, UNKNOWN_PLATFORM, PlatformLayout, PlatformResolver
from ._provisioner import (
    GITHUB_API_URL,
    BinaryLocation,
    BinaryProvisioner,
    ProgressCallback,
    ReleaseAsset,
    ReleaseInfo,
)

__all__ = [
    "ARCHIVE_NAME_TEMPLATE",
    "GITHUB_API_URL",
    "UNKNOWN_PLATFORM",
    "BinaryLocation",
    "BinaryProvisioner",
    "PlatformLayout",
    "PlatformResolver",
    "ProgressCallback",
    "ReleaseAsset",
    "ReleaseInfo",
]
