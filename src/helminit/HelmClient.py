"""Subprocess calls issued to the provisioned helm binary.

Every command is built as an explicit argument list and run without a
shell, so repository URLs and credentials never need quoting.
"""

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Any, Callable

from .Config import Credentials, Repository
from .Errors import HelmCommandError, ProvisioningError

logger = logging.getLogger(__name__)

SECRET_FLAGS = ("--password=",)


def redact(arglist: list[str]) -> list[str]:
    """Return `arglist` with the values of secret-carrying flags masked."""
    redacted = []
    for arg in arglist:
        for flag in SECRET_FLAGS:
            if arg.startswith(flag):
                arg = flag + "****"
        redacted.append(arg)
    return redacted


def runcmd(*args: str | Path, **kwargs: Any) -> subprocess.CompletedProcess:
    """Run (and log) a given command.  Raise an error if it fails."""
    arglist = [str(a) for a in args]
    logger.info("Running: %s", " ".join(map(shlex.quote, redact(arglist))))
    return subprocess.run(arglist, check=True, **kwargs)


class HelmClient:
    """Drives a helm binary through `runner`.

    Attributes:
        binary (Path): Path of the helm executable.
        home (Path | None): Alternate helm home passed as ``--home=``.
        runner (callable): Called with the full argument list; must raise
            `subprocess.CalledProcessError` on a non-zero exit.
    """

    def __init__(self, binary: Path, home: Path | None = None,
                 runner: Callable[..., Any] = runcmd) -> None:
        self.binary = Path(binary)
        self.home = home
        self.runner = runner

    def _home_args(self) -> list[str]:
        return [f"--home={self.home}"] if self.home else []

    def _call(self, args: list[str], message: str) -> None:
        try:
            self.runner(self.binary, *args)
        except subprocess.CalledProcessError as e:
            raise HelmCommandError(message, e.returncode) from e
        except OSError as e:
            raise ProvisioningError(f"{message}: {e}") from e

    def verify(self) -> None:
        """Check that a pre-existing local binary runs at all."""
        self._call(["version", "--client"], f"Unable to verify local helm binary {self.binary}")

    def init(self, skip_refresh: bool = False) -> None:
        """Put helm into a ready-to-use client-only state."""
        logger.info("Run helm init...")
        args = ["init", "--client-only"]
        if skip_refresh:
            args.append("--skip-refresh")
        args += self._home_args()
        self._call(args, "Unable to call helm init")

    def add_repository(self, repository: Repository, credentials: Credentials | None = None) -> None:
        """Register `repository`, passing credentials only when some were resolved."""
        logger.info("Adding repo %s (%s)", repository.name, repository.url)
        args = ["repo", "add", repository.name, repository.url]
        args += self._home_args()
        if credentials is not None:
            args.append(f"--username={credentials.username}")
            args.append(f"--password={credentials.password.get_secret_value()}")
        self._call(args, f"Unable to add repo {repository.name} ({repository.url})")
