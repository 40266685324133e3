"""Service binary provisioning.

The provisioner guarantees that the service executable for the host
platform exists on disk. It tries, in order: an already extracted
executable, an archive in the local archive cache, and (for the release
source) an archive downloaded from the GitHub release registry.
"""

import os
import shutil
import stat
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Final

import anyio
import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from knowlang_bridge.config import ProvisioningConfig, ProvisioningSource
from knowlang_bridge.exceptions import ProvisioningError

from ._platform import PlatformLayout, PlatformResolver

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

ProgressCallback = Callable[[float], None]

GITHUB_API_URL: Final = "https://api.github.com"

_CHUNK_SIZE: Final = 64 * 1024


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a release."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    name: str
    browser_download_url: str
    size: int = 0


class ReleaseInfo(BaseModel):
    """The subset of a GitHub release payload used for provisioning."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    tag_name: str = ""
    assets: list[ReleaseAsset] = []


@dataclass(frozen=True, slots=True)
class BinaryLocation:
    """Where the service binary lives and how it got there.

    Attributes:
        executable_path: Path of the extracted service executable.
        archive_path: Cached archive the executable came from, if any.
        asset: Release asset that was downloaded, if any.
    """

    executable_path: Path
    archive_path: Path | None = None
    asset: ReleaseAsset | None = None


class BinaryProvisioner:
    """Make the service executable available locally.

    Example:
        >>> provisioner = BinaryProvisioner(config.provisioning)
        >>> await provisioner.ensure_binaries()
        True
    """

    def __init__(
        self,
        config: ProvisioningConfig | None = None,
        *,
        resolver: PlatformResolver | None = None,
        client: httpx.AsyncClient | None = None,
        progress: ProgressCallback | None = None,
        logger: "FilteringBoundLogger | None" = None,
    ) -> None:
        """Initialize the provisioner.

        Args:
            config: Provisioning settings; defaults apply when None.
            resolver: Platform resolver; the host platform when None.
            client: HTTP client for the release registry. When None a
                client is created per download and closed afterwards.
            progress: Called with the downloaded fraction (0.0 to 1.0).
            logger: Logger for provisioning events.
        """
        self.config: ProvisioningConfig = config or ProvisioningConfig()
        self._layout: PlatformLayout = (resolver or PlatformResolver()).resolve()
        self._client: httpx.AsyncClient | None = client
        self._progress: ProgressCallback | None = progress
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(__name__)
        self.last_location: BinaryLocation | None = None
        self.last_error: ProvisioningError | None = None

    @property
    def layout(self) -> PlatformLayout:
        """Return the platform layout in use."""
        return self._layout

    @property
    def binary_dir(self) -> Path:
        """Return the directory that holds the extracted binaries."""
        return self._layout.binary_dir(self.config.install_dir)

    @property
    def executable_path(self) -> Path:
        """Return the path of the service executable."""
        return self._layout.executable_path(self.config.install_dir)

    @property
    def archive_path(self) -> Path:
        """Return the path of the cached archive for this platform."""
        return self.config.archive_dir / self._layout.archive_name

    def is_provisioned(self) -> bool:
        """Check whether the service executable is already present."""
        return self.executable_path.is_file()

    async def ensure_binaries(self) -> bool:
        """Ensure the service executable exists, fetching it if necessary.

        Never raises: failures are logged and kept in ``last_error``.

        Returns:
            True if the executable is present afterwards.
        """
        self.last_error = None
        try:
            self.last_location = await self.provision()
        except ProvisioningError as e:
            self.last_error = e
            self._logger.error(
                "provisioning_failed",
                error=str(e),
                path=str(e.path) if e.path else None,
                exit_code=e.exit_code,
                platform=self._layout.platform_tag,
            )
            return False
        return True

    async def provision(self) -> BinaryLocation:
        """Run the provisioning steps, stopping at the first that succeeds.

        Returns:
            Where the executable was found or placed.

        Raises:
            ProvisioningError: If no step produced the executable.
        """
        executable = self.executable_path
        if executable.is_file():
            self._logger.debug("binaries_present", path=str(executable))
            return BinaryLocation(executable_path=executable)

        if not self._layout.is_supported:
            msg = "No service binaries are published for this platform"
            raise ProvisioningError(msg, path=executable)

        archive = self.archive_path
        if archive.is_file():
            self._logger.info("using_cached_archive", path=str(archive))
            await self.extract_archive(archive)
            return BinaryLocation(executable_path=executable, archive_path=archive)

        if self.config.source != ProvisioningSource.RELEASE:
            msg = f"No cached archive found for source '{self.config.source}'"
            raise ProvisioningError(msg, path=archive)

        asset = await self._download_release_archive(archive)
        await self.extract_archive(archive)
        return BinaryLocation(
            executable_path=executable, archive_path=archive, asset=asset
        )

    def _release_url(self) -> str:
        base = f"{GITHUB_API_URL}/repos/{self.config.repository}/releases"
        if self.config.release_tag == "latest":
            return f"{base}/latest"
        return f"{base}/tags/{self.config.release_tag}"

    async def _download_release_archive(self, destination: Path) -> ReleaseAsset:
        if self._client is not None:
            return await self._fetch_and_download(self._client, destination)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._fetch_and_download(client, destination)

    async def _fetch_and_download(
        self, client: httpx.AsyncClient, destination: Path
    ) -> ReleaseAsset:
        asset = await self.fetch_release_asset(client)
        await self.download_archive(client, asset, destination)
        return asset

    async def fetch_release_asset(self, client: httpx.AsyncClient) -> ReleaseAsset:
        """Look up the archive asset for this platform in the release registry.

        Raises:
            ProvisioningError: If the registry is unreachable, returns an
                error, or has no asset with the expected name.
        """
        url = self._release_url()
        try:
            response = await client.get(
                url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self.config.api_timeout,
                follow_redirects=True,
            )
            _ = response.raise_for_status()
            release = ReleaseInfo.model_validate_json(response.content)
        except httpx.HTTPError as e:
            msg = f"Failed to query release registry: {e}"
            raise ProvisioningError(msg, cause=e) from e
        except ValidationError as e:
            msg = f"Unexpected release payload from {url}"
            raise ProvisioningError(msg, cause=e) from e

        for asset in release.assets:
            if asset.name == self._layout.archive_name:
                self._logger.info(
                    "release_asset_found",
                    tag=release.tag_name,
                    asset=asset.name,
                    size=asset.size,
                )
                return asset

        msg = f"Release '{release.tag_name}' has no asset named {self._layout.archive_name}"
        raise ProvisioningError(msg)

    async def download_archive(
        self,
        client: httpx.AsyncClient,
        asset: ReleaseAsset,
        destination: Path,
    ) -> Path:
        """Stream an asset into the archive cache.

        The archive is written next to its destination and renamed into
        place once complete, so an interrupted download never leaves a
        truncated archive behind.

        Raises:
            ProvisioningError: If the download or the write fails.
        """
        partial = destination.with_name(f"{destination.name}.part")
        self._logger.info(
            "archive_download_started",
            url=asset.browser_download_url,
            path=str(destination),
        )
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            async with client.stream(
                "GET",
                asset.browser_download_url,
                timeout=self.config.download_timeout,
                follow_redirects=True,
            ) as response:
                _ = response.raise_for_status()
                total = int(response.headers.get("Content-Length", 0)) or asset.size
                received = 0
                self._report_progress(0.0)
                async with await anyio.open_file(partial, "wb") as f:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        _ = await f.write(chunk)
                        received += len(chunk)
                        if total:
                            self._report_progress(min(received / total, 1.0))
            _ = partial.replace(destination)
        except (httpx.HTTPError, OSError) as e:
            partial.unlink(missing_ok=True)
            msg = f"Failed to download {asset.name}: {e}"
            raise ProvisioningError(msg, path=destination, cause=e) from e

        self._report_progress(1.0)
        self._logger.info("archive_downloaded", path=str(destination), size=received)
        return destination

    def _report_progress(self, fraction: float) -> None:
        if self._progress is None:
            return
        try:
            self._progress(fraction)
        except Exception:  # noqa: BLE001
            self._logger.warning("progress_callback_failed", exc_info=True)

    async def extract_archive(self, archive: Path) -> Path:
        """Extract an archive into the platform binary directory.

        Any existing binary directory is removed first. On failure the
        directory is removed again so no partial executable survives.

        Returns:
            The path of the verified executable.

        Raises:
            ProvisioningError: If the archive tool is missing or fails, or
                the executable is absent after extraction.
        """
        target = self.binary_dir
        tool = shutil.which(self._layout.extract_tool)
        if tool is None:
            msg = f"Archive tool '{self._layout.extract_tool}' not found on PATH"
            raise ProvisioningError(msg, path=archive)

        try:
            if target.exists():
                shutil.rmtree(target)
            target.mkdir(parents=True)
        except OSError as e:
            msg = f"Failed to prepare {target}: {e}"
            raise ProvisioningError(msg, path=target, cause=e) from e

        self._logger.info("archive_extract_started", archive=str(archive), target=str(target))
        try:
            result = await anyio.run_process(
                [tool, "-xzf", str(archive), "-C", str(target)],
                check=False,
            )
        except OSError as e:
            shutil.rmtree(target, ignore_errors=True)
            msg = f"Failed to run archive tool: {e}"
            raise ProvisioningError(msg, path=archive, cause=e) from e

        if result.returncode != 0:
            shutil.rmtree(target, ignore_errors=True)
            stderr = result.stderr.decode(errors="replace").strip()
            msg = f"Archive extraction failed: {stderr or 'no output'}"
            raise ProvisioningError(msg, path=archive, exit_code=result.returncode)

        return self._verify_executable()

    def _verify_executable(self) -> Path:
        executable = self.executable_path
        if not executable.is_file():
            msg = f"Executable not found after extraction: {executable}"
            raise ProvisioningError(msg, path=executable)

        if os.name == "posix":
            mode = executable.stat().st_mode
            executable.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        self._logger.info("binaries_ready", path=str(executable))
        return executable
