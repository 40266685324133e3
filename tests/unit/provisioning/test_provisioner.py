"""Unit tests for BinaryProvisioner."""

import io
import os
import sys
import tarfile
from pathlib import Path

import httpx
import orjson
import pytest

from knowlang_bridge.config import ProvisioningConfig, ProvisioningSource
from knowlang_bridge.provisioning import BinaryProvisioner, PlatformResolver

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="extraction tests use the POSIX tar tool"
)

ARCHIVE_NAME = "knowlang-unity-linux-latest.tar.gz"
DOWNLOAD_URL = "https://github.com/KnowLangOrg/know-lang/releases/download/v1/" + ARCHIVE_NAME


def build_archive(members: dict[str, bytes]) -> bytes:
    """Build a gzip tarball in memory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def provisioning_config(tmp_path: Path) -> ProvisioningConfig:
    return ProvisioningConfig(
        install_dir=tmp_path / "install",
        archive_dir=tmp_path / "archives",
    )


def make_provisioner(
    config: ProvisioningConfig,
    *,
    platform: str = "linux",
    client: httpx.AsyncClient | None = None,
    progress: list[float] | None = None,
) -> BinaryProvisioner:
    return BinaryProvisioner(
        config,
        resolver=PlatformResolver(platform),
        client=client,
        progress=progress.append if progress is not None else None,
    )


def release_transport(archive: bytes, *, assets: list[str] | None = None) -> httpx.MockTransport:
    names = assets if assets is not None else [ARCHIVE_NAME]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.github.com":
            assert request.url.path == "/repos/KnowLangOrg/know-lang/releases/latest"
            payload = {
                "tag_name": "v1",
                "assets": [
                    {"name": name, "browser_download_url": DOWNLOAD_URL, "size": len(archive)}
                    for name in names
                ],
            }
            return httpx.Response(200, content=orjson.dumps(payload))
        if str(request.url) == DOWNLOAD_URL:
            return httpx.Response(200, content=archive)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestProvisionerPaths:
    def test_paths_follow_layout(self, provisioning_config: ProvisioningConfig) -> None:
        provisioner = make_provisioner(provisioning_config)

        assert provisioner.binary_dir == provisioning_config.install_dir / "linux"
        assert provisioner.executable_path == provisioning_config.install_dir / "linux" / "main"
        assert provisioner.archive_path == provisioning_config.archive_dir / ARCHIVE_NAME
        assert not provisioner.is_provisioned()


class TestEnsureBinaries:
    @pytest.mark.anyio
    async def test_existing_executable_is_used(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        provisioner = make_provisioner(provisioning_config)
        provisioner.executable_path.parent.mkdir(parents=True)
        _ = provisioner.executable_path.write_text("binary")

        assert await provisioner.ensure_binaries() is True
        assert provisioner.last_location is not None
        assert provisioner.last_location.archive_path is None
        assert provisioner.last_error is None

    @pytest.mark.anyio
    async def test_cached_archive_is_extracted(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        provisioner = make_provisioner(provisioning_config)
        provisioner.archive_path.parent.mkdir(parents=True)
        _ = provisioner.archive_path.write_bytes(
            build_archive({"main": b"#!/bin/sh\n", "data/model.bin": b"weights"})
        )

        assert await provisioner.ensure_binaries() is True

        executable = provisioner.executable_path
        assert executable.read_bytes() == b"#!/bin/sh\n"
        assert os.access(executable, os.X_OK)
        assert (provisioner.binary_dir / "data" / "model.bin").read_bytes() == b"weights"
        assert provisioner.last_location is not None
        assert provisioner.last_location.archive_path == provisioner.archive_path

    @pytest.mark.anyio
    async def test_stale_binary_dir_is_replaced(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        provisioner = make_provisioner(provisioning_config)
        provisioner.binary_dir.mkdir(parents=True)
        _ = (provisioner.binary_dir / "leftover.txt").write_text("old")
        provisioner.archive_path.parent.mkdir(parents=True)
        _ = provisioner.archive_path.write_bytes(build_archive({"main": b"new"}))

        assert await provisioner.ensure_binaries() is True
        assert not (provisioner.binary_dir / "leftover.txt").exists()

    @pytest.mark.anyio
    async def test_corrupt_archive_leaves_no_executable(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        provisioner = make_provisioner(provisioning_config)
        provisioner.archive_path.parent.mkdir(parents=True)
        _ = provisioner.archive_path.write_bytes(b"not a tarball")

        assert await provisioner.ensure_binaries() is False

        assert provisioner.last_error is not None
        assert provisioner.last_error.exit_code not in (None, 0)
        assert not provisioner.binary_dir.exists()

    @pytest.mark.anyio
    async def test_archive_without_executable_fails(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        provisioner = make_provisioner(provisioning_config)
        provisioner.archive_path.parent.mkdir(parents=True)
        _ = provisioner.archive_path.write_bytes(build_archive({"README": b"hi"}))

        assert await provisioner.ensure_binaries() is False
        assert provisioner.last_error is not None
        assert provisioner.last_error.path == provisioner.executable_path

    @pytest.mark.anyio
    async def test_missing_archive_tool(
        self,
        provisioning_config: ProvisioningConfig,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr("knowlang_bridge.provisioning._provisioner.shutil.which", lambda _: None)
        provisioner = make_provisioner(provisioning_config)
        provisioner.archive_path.parent.mkdir(parents=True)
        _ = provisioner.archive_path.write_bytes(build_archive({"main": b"x"}))

        assert await provisioner.ensure_binaries() is False
        assert provisioner.last_error is not None
        assert "not found on PATH" in str(provisioner.last_error)

    @pytest.mark.anyio
    async def test_release_download(self, provisioning_config: ProvisioningConfig) -> None:
        archive = build_archive({"main": b"downloaded"})
        progress: list[float] = []
        async with httpx.AsyncClient(transport=release_transport(archive)) as client:
            provisioner = make_provisioner(provisioning_config, client=client, progress=progress)

            assert await provisioner.ensure_binaries() is True

        assert provisioner.executable_path.read_bytes() == b"downloaded"
        assert provisioner.archive_path.read_bytes() == archive
        assert not provisioner.archive_path.with_name(ARCHIVE_NAME + ".part").exists()
        assert progress[0] == 0.0
        assert progress[-1] == 1.0
        assert progress == sorted(progress)
        assert provisioner.last_location is not None
        assert provisioner.last_location.asset is not None
        assert provisioner.last_location.asset.name == ARCHIVE_NAME

    @pytest.mark.anyio
    async def test_release_without_matching_asset(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        transport = release_transport(b"", assets=["knowlang-unity-macos-latest.tar.gz"])
        async with httpx.AsyncClient(transport=transport) as client:
            provisioner = make_provisioner(provisioning_config, client=client)

            assert await provisioner.ensure_binaries() is False

        assert provisioner.last_error is not None
        assert ARCHIVE_NAME in str(provisioner.last_error)
        assert not provisioner.archive_path.exists()

    @pytest.mark.anyio
    async def test_registry_error(self, provisioning_config: ProvisioningConfig) -> None:
        transport = httpx.MockTransport(lambda _: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            provisioner = make_provisioner(provisioning_config, client=client)

            assert await provisioner.ensure_binaries() is False

        assert provisioner.last_error is not None
        assert isinstance(provisioner.last_error.cause, httpx.HTTPStatusError)

    @pytest.mark.anyio
    async def test_release_tag_url(self, tmp_path: Path) -> None:
        config = ProvisioningConfig(
            install_dir=tmp_path / "install",
            archive_dir=tmp_path / "archives",
            release_tag="v2.0",
        )
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provisioner = make_provisioner(config, client=client)
            assert await provisioner.ensure_binaries() is False

        assert seen == ["/repos/KnowLangOrg/know-lang/releases/tags/v2.0"]

    @pytest.mark.anyio
    async def test_bundled_source_without_archive(self, tmp_path: Path) -> None:
        config = ProvisioningConfig(
            install_dir=tmp_path / "install",
            archive_dir=tmp_path / "archives",
            source=ProvisioningSource.BUNDLED,
        )
        provisioner = make_provisioner(config)

        assert await provisioner.ensure_binaries() is False
        assert provisioner.last_error is not None
        assert provisioner.last_error.path == provisioner.archive_path

    @pytest.mark.anyio
    async def test_unsupported_platform(self, provisioning_config: ProvisioningConfig) -> None:
        provisioner = make_provisioner(provisioning_config, platform="sunos5")

        assert await provisioner.ensure_binaries() is False
        assert provisioner.last_error is not None
        assert "platform" in str(provisioner.last_error)

    @pytest.mark.anyio
    async def test_progress_callback_errors_are_ignored(
        self, provisioning_config: ProvisioningConfig
    ) -> None:
        archive = build_archive({"main": b"x"})

        def broken(_: float) -> None:
            raise RuntimeError("display gone")

        async with httpx.AsyncClient(transport=release_transport(archive)) as client:
            provisioner = BinaryProvisioner(
                provisioning_config,
                resolver=PlatformResolver("linux"),
                client=client,
                progress=broken,
            )

            assert await provisioner.ensure_binaries() is True
