from __future__ import annotations

import io
import logging
import subprocess
import tarfile
import zipfile

import pytest


def _build_tar(members: list[tuple[str, bytes | None]], compression: str = "") -> bytes:
    """Build a tar archive in memory; a None payload makes a directory."""
    data = io.BytesIO()
    mode = f"w:{compression}" if compression else "w"
    with tarfile.open(fileobj=data, mode=mode) as archive:
        for name, payload in members:
            info = tarfile.TarInfo(name=name)
            if payload is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                archive.addfile(info)
            else:
                info.size = len(payload)
                info.mode = 0o644
                archive.addfile(info, io.BytesIO(payload))
    return data.getvalue()


def _build_zip(members: list[tuple[str, bytes | None]]) -> bytes:
    data = io.BytesIO()
    with zipfile.ZipFile(data, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, payload in members:
            if payload is None:
                archive.writestr(zipfile.ZipInfo(name.rstrip("/") + "/"), b"")
            else:
                archive.writestr(name, payload)
    return data.getvalue()


class TrackingBytesIO(io.BytesIO):
    """BytesIO that remembers it was closed, even after close() returns."""

    was_closed = False

    def close(self) -> None:
        self.was_closed = True
        super().close()


class CommandRecorder:
    """Stands in for `runcmd`; records argument lists, optionally failing."""

    def __init__(self, fail_on: str | None = None, returncode: int = 1) -> None:
        self.calls: list[list[str]] = []
        self.fail_on = fail_on
        self.returncode = returncode

    def __call__(self, *args) -> subprocess.CompletedProcess:
        arglist = [str(a) for a in args]
        self.calls.append(arglist)
        if self.fail_on is not None and self.fail_on in arglist:
            raise subprocess.CalledProcessError(self.returncode, arglist)
        return subprocess.CompletedProcess(arglist, 0)


@pytest.fixture
def build_tar():
    return _build_tar


@pytest.fixture
def build_zip():
    return _build_zip


@pytest.fixture
def recorder() -> CommandRecorder:
    return CommandRecorder()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handlers the CLI installs so caplog keeps seeing records."""
    logger = logging.getLogger("helminit")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
