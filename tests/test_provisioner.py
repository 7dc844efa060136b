from __future__ import annotations

import io
import os
import stat
from pathlib import Path

import pytest
from rich.console import Console
from rich.progress import Progress

from helminit import Platform as platform_module
from helminit import Provisioner
from helminit.Config import ProvisionConfig
from helminit.Errors import (
    BinaryNotFoundError,
    DownloadError,
    HelmCommandError,
    ProvisioningError,
    UnsupportedFormatError,
)
from helminit.Platform import Platform
from helminit.Provisioner import HelmProvisioner

from .conftest import CommandRecorder, TrackingBytesIO

URL = "https://get.helm.sh/helm-v2.17.0-linux-amd64.tar.gz"


class Opener:
    """Serves one in-memory archive and keeps every stream it handed out."""

    def __init__(self, payload: bytes) -> None:
        self.payload = payload
        self.urls: list[str] = []
        self.streams: list[TrackingBytesIO] = []

    def __call__(self, url: str) -> TrackingBytesIO:
        self.urls.append(url)
        stream = TrackingBytesIO(self.payload)
        self.streams.append(stream)
        return stream


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    return ProvisionConfig(output_directory=tmp_path / "target" / "helm", download_url=URL)


def _provisioner(config: ProvisionConfig, opener, runner, platform: Platform = Platform.POSIX) -> HelmProvisioner:
    return HelmProvisioner(config, platform=platform, opener=opener, runner=runner)


def test_downloads_extracts_and_initializes(config: ProvisionConfig, build_tar, recorder: CommandRecorder) -> None:
    payload = b"#!/bin/sh\necho helm\n"
    opener = Opener(build_tar([("tools/", None), ("tools/helm", payload)], compression="gz"))

    binary = _provisioner(config, opener, recorder).provision()

    expected = config.output_directory.absolute() / "helm"
    assert binary == expected
    assert expected.read_bytes() == payload
    if os.name == "posix":
        assert os.access(expected, os.X_OK)
    assert opener.urls == [URL]
    assert recorder.calls == [[str(expected), "init", "--client-only"]]
    assert all(stream.was_closed for stream in opener.streams)
    # Only the binary is left behind, no temporary files
    assert [p.name for p in expected.parent.iterdir()] == ["helm"]


def test_existing_binary_skips_download(config: ProvisionConfig, recorder: CommandRecorder) -> None:
    config.output_directory.mkdir(parents=True)
    existing = config.output_directory / "helm"
    existing.write_bytes(b"already here")
    opener = Opener(b"")

    binary = _provisioner(config, opener, recorder).provision()

    assert binary == existing.absolute()
    assert opener.urls == []
    assert existing.read_bytes() == b"already here"
    assert recorder.calls == [[str(existing.absolute()), "init", "--client-only"]]


def test_executable_directory_is_used_for_install(tmp_path: Path, build_tar, recorder: CommandRecorder) -> None:
    config = ProvisionConfig(output_directory=tmp_path / "out", executable_directory=tmp_path / "bin",
                             download_url=URL)
    opener = Opener(build_tar([("linux-amd64/helm", b"binary")], compression="gz"))

    binary = _provisioner(config, opener, recorder).provision()

    assert binary == (tmp_path / "bin" / "helm").absolute()
    assert (tmp_path / "out").is_dir()


def test_windows_zip_archive(config: ProvisionConfig, build_zip, recorder: CommandRecorder,
                             monkeypatch: pytest.MonkeyPatch) -> None:
    # No ACL tool available: the file is installed without permission changes
    monkeypatch.setattr("helminit.Permissions.shutil.which", lambda name: None)
    opener = Opener(build_zip([("windows-amd64/helm", b"wrong"), ("windows-amd64/helm.exe", b"MZ binary")]))

    binary = _provisioner(config, opener, recorder, platform=Platform.WINDOWS).provision()

    assert binary.name == "helm.exe"
    assert binary.read_bytes() == b"MZ binary"


def test_repositories_are_added_in_order_with_credentials(tmp_path: Path, build_tar,
                                                          recorder: CommandRecorder) -> None:
    config = ProvisionConfig(
        output_directory=tmp_path / "out",
        download_url=URL,
        home_directory=tmp_path / "home",
        skip_refresh=True,
        repositories=[
            {"name": "private", "url": "https://charts.example.com"},
            {"name": "stable", "url": "https://charts.helm.sh/stable"},
        ],
        servers={"private": {"username": "deployer", "password": "s3cr3t"}},
    )
    opener = Opener(build_tar([("linux-amd64/helm", b"binary")], compression="gz"))

    binary = _provisioner(config, opener, recorder).provision()

    home = f"--home={tmp_path / 'home'}"
    assert recorder.calls == [
        [str(binary), "init", "--client-only", "--skip-refresh", home],
        [str(binary), "repo", "add", "private", "https://charts.example.com", home,
         "--username=deployer", "--password=s3cr3t"],
        [str(binary), "repo", "add", "stable", "https://charts.helm.sh/stable", home],
    ]


def test_repository_failure_stops_registration(tmp_path: Path, build_tar) -> None:
    config = ProvisionConfig(
        output_directory=tmp_path / "out",
        download_url=URL,
        repositories=[
            {"name": "broken", "url": "https://broken.example.com"},
            {"name": "stable", "url": "https://charts.helm.sh/stable"},
        ],
    )
    runner = CommandRecorder(fail_on="add")
    opener = Opener(build_tar([("linux-amd64/helm", b"binary")], compression="gz"))

    with pytest.raises(HelmCommandError, match="broken"):
        _provisioner(config, opener, runner).provision()

    assert [call[1:4] for call in runner.calls] == [["init", "--client-only"], ["repo", "add", "broken"]]


def test_init_failure_is_fatal(config: ProvisionConfig, build_tar) -> None:
    runner = CommandRecorder(fail_on="init", returncode=2)
    opener = Opener(build_tar([("linux-amd64/helm", b"binary")], compression="gz"))

    with pytest.raises(HelmCommandError, match="exit code 2"):
        _provisioner(config, opener, runner).provision()

    assert len(runner.calls) == 1


@pytest.mark.parametrize("flag", ["skip", "skip_init"])
def test_skip_does_nothing(config: ProvisionConfig, recorder: CommandRecorder, flag: str) -> None:
    config = config.model_copy(update={flag: True})
    opener = Opener(b"")

    assert _provisioner(config, opener, recorder).provision() is None

    assert opener.urls == []
    assert recorder.calls == []
    assert not config.output_directory.exists()


def test_local_binary_is_verified_not_downloaded(tmp_path: Path, config: ProvisionConfig,
                                                 recorder: CommandRecorder) -> None:
    local = tmp_path / "opt" / "helm"
    config = config.model_copy(update={"use_local_binary": True, "local_binary": local})
    opener = Opener(b"")

    binary = _provisioner(config, opener, recorder).provision()

    assert binary == local
    assert opener.urls == []
    assert recorder.calls == [
        [str(local), "version", "--client"],
        [str(local), "init", "--client-only"],
    ]


def test_local_binary_looked_up_on_path(config: ProvisionConfig, recorder: CommandRecorder,
                                        monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Provisioner.shutil, "which", lambda name: f"/usr/local/bin/{name}")
    config = config.model_copy(update={"use_local_binary": True})

    binary = _provisioner(config, Opener(b""), recorder).provision()

    assert binary == Path("/usr/local/bin/helm")


def test_local_binary_missing_from_path(config: ProvisionConfig, recorder: CommandRecorder,
                                        monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Provisioner.shutil, "which", lambda name: None)
    config = config.model_copy(update={"use_local_binary": True})

    with pytest.raises(ProvisioningError, match="Unable to find local helm binary"):
        _provisioner(config, Opener(b""), recorder).provision()

    assert recorder.calls == []


def test_unsupported_archive_names_url(config: ProvisionConfig, recorder: CommandRecorder) -> None:
    opener = Opener(b"7z\xbc\xaf\x27\x1c" + b"\x00" * 600)

    with pytest.raises(UnsupportedFormatError, match="7z") as excinfo:
        _provisioner(config, opener, recorder).provision()

    assert URL in str(excinfo.value)
    assert not (config.output_directory / "helm").exists()
    assert recorder.calls == []
    assert opener.streams[0].was_closed


def test_missing_binary_in_archive(config: ProvisionConfig, build_tar, recorder: CommandRecorder) -> None:
    opener = Opener(build_tar([("linux-amd64/README.md", b"docs"), ("linux-amd64/tiller", b"bin")],
                              compression="gz"))

    with pytest.raises(BinaryNotFoundError, match=f"Unable to find helm executable in archive downloaded from {URL}"):
        _provisioner(config, opener, recorder).provision()

    assert list(config.output_directory.iterdir()) == []
    assert opener.streams[0].was_closed


def test_corrupt_archive_is_reported(config: ProvisionConfig, recorder: CommandRecorder) -> None:
    opener = Opener(b"\x1f\x8b" + b"\xff" * 64)

    with pytest.raises(ProvisioningError, match="Unable to download and extract helm executable"):
        _provisioner(config, opener, recorder).provision()

    assert opener.streams[0].was_closed
    assert recorder.calls == []


def test_download_error_propagates(config: ProvisionConfig, recorder: CommandRecorder) -> None:
    def opener(url: str):
        raise DownloadError(f"Unable to download {url}: HTTP 404")

    with pytest.raises(DownloadError, match="HTTP 404"):
        _provisioner(config, opener, recorder).provision()

    assert recorder.calls == []


def test_local_archive_path(tmp_path: Path, build_tar, recorder: CommandRecorder) -> None:
    archive = tmp_path / "helm-v2.17.0-linux-amd64.tar.bz2"
    archive.write_bytes(build_tar([("linux-amd64/helm", b"binary")], compression="bz2"))
    config = ProvisionConfig(output_directory=tmp_path / "out", download_url=str(archive))

    binary = HelmProvisioner(config, platform=Platform.POSIX, runner=recorder).provision()

    assert binary.read_bytes() == b"binary"


def test_output_directory_cannot_be_created(tmp_path: Path, recorder: CommandRecorder) -> None:
    blocker = tmp_path / "file"
    blocker.write_bytes(b"")
    config = ProvisionConfig(output_directory=blocker / "helm", download_url=URL)

    with pytest.raises(ProvisioningError, match="Unable to create output directory"):
        _provisioner(config, Opener(b""), recorder).provision()


@pytest.fixture
def umask_022():
    previous = os.umask(0o022)
    yield
    os.umask(previous)


@pytest.mark.skipif(os.name != "posix", reason="needs POSIX permission bits")
def test_installed_binary_keeps_umask_bits(config: ProvisionConfig, build_tar, recorder: CommandRecorder,
                                           umask_022) -> None:
    opener = Opener(build_tar([("linux-amd64/helm", b"binary")], compression="gz"))

    binary = _provisioner(config, opener, recorder).provision()

    # Readable by group and others, executable by the owner
    assert stat.S_IMODE(binary.stat().st_mode) == 0o644 | stat.S_IXUSR


def test_directory_in_place_of_binary_is_not_reused(config: ProvisionConfig, build_tar,
                                                    recorder: CommandRecorder) -> None:
    (config.output_directory / "helm").mkdir(parents=True)
    opener = Opener(build_tar([("linux-amd64/helm", b"binary")], compression="gz"))

    with pytest.raises(ProvisioningError, match="Unable to download and extract helm executable"):
        _provisioner(config, opener, recorder).provision()

    assert opener.urls == [URL]
    assert recorder.calls == []


def test_extraction_progress_is_reported(config: ProvisionConfig, build_tar, recorder: CommandRecorder) -> None:
    payload = b"x" * 4096
    opener = Opener(build_tar([("linux-amd64/helm", payload)], compression="gz"))
    progress = Progress(console=Console(file=io.StringIO()))

    HelmProvisioner(config, platform=Platform.POSIX, opener=opener, runner=recorder,
                    progress=progress).provision()

    [task] = progress.tasks
    assert task.description == "Extracting linux-amd64/helm"
    assert task.total == len(payload)
    assert task.completed == len(payload)


def test_host_without_helm_build(tmp_path: Path, recorder: CommandRecorder,
                                 monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(platform_module.platform, "system", lambda: "Linux")
    monkeypatch.setattr(platform_module.platform, "machine", lambda: "mips64")
    config = ProvisionConfig(output_directory=tmp_path / "out")
    opener = Opener(b"")

    with pytest.raises(ProvisioningError, match="Unsupported architecture: mips64"):
        _provisioner(config, opener, recorder).provision()

    assert opener.urls == []
